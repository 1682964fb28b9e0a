"""
Database models package
"""

from .base import Base, BaseModel
from .delegate import Delegate, DelegatePermission
from .audit import AuditLog, AuditEventType, AuditSeverity, AuditStatus
from .subscription import Subscription, SubscriptionStatus

__all__ = [
    "Base", "BaseModel", "Delegate", "DelegatePermission", "AuditLog", "Subscription",
    "AuditEventType", "AuditSeverity", "AuditStatus", "SubscriptionStatus"
]
