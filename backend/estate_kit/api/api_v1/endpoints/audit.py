"""
Audit log endpoints
"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import datetime

from estate_kit.api.deps import CurrentSession, get_audit_service, get_current_session
from estate_kit.models.audit import AuditEventType, AuditSeverity
from estate_kit.schemas.audit import AuditLogFilters, AuditLogResponse
from estate_kit.services.audit_service import AuditService

router = APIRouter()

@router.get("/logs", response_model=List[AuditLogResponse])
def list_my_logs(
    event_type: Optional[AuditEventType] = None,
    severity: Optional[AuditSeverity] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current: CurrentSession = Depends(get_current_session),
    service: AuditService = Depends(get_audit_service),
):
    """The caller's own audit trail, newest first"""
    filters = AuditLogFilters(
        user_id=current.user_id,
        event_type=event_type,
        severity=severity,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return service.list_logs(filters)
