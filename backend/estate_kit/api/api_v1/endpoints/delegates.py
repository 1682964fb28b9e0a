"""
Delegate management endpoints
"""

from fastapi import APIRouter, Depends, status
from typing import List, Optional
import logging

from estate_kit.api.deps import CurrentSession, get_current_session, get_delegate_service
from estate_kit.core.permissions import DelegateStatus
from estate_kit.schemas.delegate import (
    AccessCheckRequest,
    AccessCheckResponse,
    DelegateCreate,
    DelegateResponse,
    PermissionsUpdate,
)
from estate_kit.services.delegate_service import DelegateService

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/", response_model=DelegateResponse, status_code=status.HTTP_201_CREATED)
def invite_delegate(
    payload: DelegateCreate,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    """
    Invite a delegate; the delegate starts in pending status
    """
    return service.create_delegate(
        current.user_id,
        payload,
        ip_address=current.context.ip_address,
        user_agent=current.context.user_agent,
    )

@router.get("/", response_model=List[DelegateResponse])
def list_delegates(
    status_filter: Optional[DelegateStatus] = None,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    return service.list_delegates(current.user_id, status_filter)

@router.get("/{delegate_id}", response_model=DelegateResponse)
def get_delegate(
    delegate_id: str,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    return service.get_delegate(current.user_id, delegate_id)

@router.put("/{delegate_id}/permissions", response_model=DelegateResponse)
def update_permissions(
    delegate_id: str,
    payload: PermissionsUpdate,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    return service.update_permissions(
        current.user_id, delegate_id, payload.permissions, ip_address=current.context.ip_address
    )

@router.post("/{delegate_id}/accept", response_model=DelegateResponse)
def accept_delegate(
    delegate_id: str,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    """
    Accept an invitation as the caller; the caller's verified email must match
    the invited contact
    """
    verified_email = current.user.email if current.user.email_verified else None
    return service.accept_delegate(
        delegate_id, current.user_id, verified_email, ip_address=current.context.ip_address
    )

@router.delete("/{delegate_id}", response_model=DelegateResponse)
def revoke_delegate(
    delegate_id: str,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    return service.revoke_delegate(current.user_id, delegate_id, ip_address=current.context.ip_address)

@router.post("/{delegate_id}/verify-access", response_model=AccessCheckResponse)
def verify_access(
    delegate_id: str,
    payload: AccessCheckRequest,
    current: CurrentSession = Depends(get_current_session),
    service: DelegateService = Depends(get_delegate_service),
):
    """
    Evaluate delegate access; a denial is a normal response, never an error
    """
    granted = service.verify_delegate_access(
        delegate_id,
        payload.resource_type,
        payload.required_access,
        actor_id=current.user_id,
        ip_address=current.context.ip_address,
        user_agent=current.context.user_agent,
    )
    return AccessCheckResponse(
        delegate_id=delegate_id,
        resource_type=payload.resource_type,
        required_access=payload.required_access,
        access_granted=granted,
    )
