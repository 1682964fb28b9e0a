"""
Append-only audit log of security relevant actions
"""

from sqlalchemy import Column, String, Text, Enum as SQLEnum
from enum import Enum

from estate_kit.models.base import BaseModel, JSONType

class AuditEventType(str, Enum):
    """Audited domain actions"""
    USER_LOGIN = "USER_LOGIN"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"
    USER_LOGOUT = "USER_LOGOUT"
    SESSION_VALIDATION_FAILED = "SESSION_VALIDATION_FAILED"
    SESSION_EVICTED = "SESSION_EVICTED"
    DELEGATE_INVITE = "DELEGATE_INVITE"
    DELEGATE_ACCEPT = "DELEGATE_ACCEPT"
    DELEGATE_REMOVE = "DELEGATE_REMOVE"
    DELEGATE_PERMISSION_UPDATE = "DELEGATE_PERMISSION_UPDATE"
    DELEGATE_ACCESS = "DELEGATE_ACCESS"
    DELEGATE_EXPIRED = "DELEGATE_EXPIRED"
    SUBSCRIPTION_CHANGE = "SUBSCRIPTION_CHANGE"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"

class AuditSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"

class AuditLog(BaseModel):
    """
    One audit entry. Rows are only ever inserted.
    """
    __tablename__ = "audit_logs"

    event_type = Column(SQLEnum(AuditEventType), nullable=False, index=True)

    severity = Column(
        SQLEnum(AuditSeverity),
        default=AuditSeverity.INFO,
        nullable=False,
        index=True
    )

    status = Column(
        SQLEnum(AuditStatus),
        default=AuditStatus.SUCCESS,
        nullable=False
    )

    user_id = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Acting user; null when the actor could not be identified"
    )

    resource_id = Column(String(255), nullable=True, index=True)

    resource_type = Column(String(100), nullable=True)

    ip_address = Column(String(64), nullable=True)

    user_agent = Column(Text, nullable=True)

    details = Column(
        JSONType,
        default=lambda: {},
        nullable=False,
        comment="Event payload; sensitive values are encrypted"
    )
