"""
Delegate model for third parties granted time-bound, role-scoped access
"""

from sqlalchemy import Column, String, Integer, Text, ForeignKey, DateTime, Uuid, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from typing import Any, Dict, FrozenSet
from datetime import datetime

from estate_kit.core.permissions import (
    AccessLevel,
    DelegateRole,
    DelegateStatus,
    Grant,
    ResourceType,
    effective_permissions,
    is_expired,
)
from estate_kit.models.base import BaseModel, ensure_utc

class Delegate(BaseModel):
    """
    A delegate invited by an account owner
    """
    __tablename__ = "delegates"

    owner_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Identity provider subject of the owning account"
    )

    delegate_user_id = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Identity provider subject of the delegate, set on acceptance"
    )

    role = Column(
        SQLEnum(DelegateRole),
        nullable=False,
        comment="Delegate role bounding the permissions that may be granted"
    )

    status = Column(
        SQLEnum(DelegateStatus),
        default=DelegateStatus.PENDING,
        nullable=False,
        index=True,
        comment="pending, active, expired or revoked"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Access ends once the current time reaches this instant"
    )

    encrypted_contact = Column(
        Text,
        nullable=False,
        comment="Encrypted delegate contact email"
    )

    access_count = Column(
        Integer,
        default=0,
        nullable=False,
        comment="Number of granted access checks"
    )

    last_accessed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Timestamp of the last granted access check"
    )

    permissions = relationship(
        "DelegatePermission",
        back_populates="delegate",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def grants(self) -> FrozenSet[Grant]:
        """Explicit grants as (resource_type, access_level) pairs"""
        return frozenset((p.resource_type, p.access_level) for p in self.permissions)

    def effective_grants(self, now: datetime) -> FrozenSet[Grant]:
        """Grants usable right now; empty for anything but an unexpired active delegate"""
        if self.status != DelegateStatus.ACTIVE or self.is_past_expiry(now):
            return frozenset()
        return effective_permissions(self.role, self.grants())

    def is_past_expiry(self, now: datetime) -> bool:
        return is_expired(ensure_utc(self.expires_at), now)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert delegate to dictionary, excluding the encrypted contact
        """
        data = super().to_dict()
        data.pop("encrypted_contact", None)
        data["permissions"] = [
            {"resource_type": p.resource_type.value, "access_level": p.access_level.value}
            for p in self.permissions
        ]
        return data


class DelegatePermission(BaseModel):
    """
    One resource-type level grant held by a delegate
    """
    __tablename__ = "delegate_permissions"

    delegate_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("delegates.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    resource_type = Column(SQLEnum(ResourceType), nullable=False)

    access_level = Column(SQLEnum(AccessLevel), nullable=False)

    delegate = relationship("Delegate", back_populates="permissions")

    __table_args__ = (
        Index('ix_delegate_permissions_delegate_resource', 'delegate_id', 'resource_type', unique=True),
    )

    def __repr__(self) -> str:
        return f"<DelegatePermission({self.resource_type.value}:{self.access_level.value})>"
