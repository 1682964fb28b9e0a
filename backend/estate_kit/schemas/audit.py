"""
Pydantic schemas for reading the audit log
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
from uuid import UUID

from estate_kit.models.audit import AuditEventType, AuditSeverity, AuditStatus

class AuditLogFilters(BaseModel):
    user_id: Optional[str] = None
    event_type: Optional[AuditEventType] = None
    severity: Optional[AuditSeverity] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=500)
    offset: int = Field(0, ge=0)

class AuditLogResponse(BaseModel):
    id: UUID
    event_type: AuditEventType
    severity: AuditSeverity
    status: AuditStatus
    user_id: Optional[str] = None
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    class Config:
        from_attributes = True
