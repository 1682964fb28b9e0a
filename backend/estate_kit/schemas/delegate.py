"""
Pydantic schemas for delegate invitations, grants and access checks
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from estate_kit.core.permissions import AccessLevel, DelegateRole, DelegateStatus, ResourceType

class PermissionGrant(BaseModel):
    """A single resource-type level grant"""

    resource_type: ResourceType = Field(..., description="Category of owner data")
    access_level: AccessLevel = Field(..., description="Granted access level")

    def as_tuple(self):
        return self.resource_type, self.access_level

class DelegateCreate(BaseModel):
    """Invitation payload sent by an owner"""

    # Format is checked by the delegate service so every caller gets the same error
    email: str = Field(..., max_length=255, description="Contact email of the delegate")
    role: DelegateRole = Field(..., description="Role bounding the grantable permissions")
    permissions: List[PermissionGrant] = Field(default_factory=list)
    expires_at: Optional[datetime] = Field(
        None,
        description="Access end; defaults to the configured delegate lifetime"
    )

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()

class PermissionsUpdate(BaseModel):
    permissions: List[PermissionGrant]

class DelegateResponse(BaseModel):
    """Delegate as returned to its owner"""

    id: UUID
    owner_id: str
    delegate_user_id: Optional[str] = None
    email: str
    role: DelegateRole
    status: DelegateStatus
    expires_at: datetime
    permissions: List[PermissionGrant]
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    created_at: datetime

class AccessCheckRequest(BaseModel):
    resource_type: ResourceType
    required_access: AccessLevel

class AccessCheckResponse(BaseModel):
    delegate_id: str
    resource_type: ResourceType
    required_access: AccessLevel
    access_granted: bool
