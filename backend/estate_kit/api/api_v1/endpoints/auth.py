"""
Authentication endpoints: login, session validation and logout
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from typing import List, Optional
import logging

from estate_kit.api.deps import (
    CurrentSession,
    RequestContext,
    get_current_session,
    get_request_context,
    get_session_manager,
)
from estate_kit.schemas.session import AuthResult, SessionSummary, SessionValidationResult
from estate_kit.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health")
async def auth_health():
    """Health check for auth endpoints"""
    return {"status": "healthy", "service": "authentication"}

@router.post("/login", response_model=AuthResult)
async def login(
    authorization: Optional[str] = Header(None),
    context: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Exchange an identity provider bearer token for a session

    Expected header:
        Authorization: Bearer <access token>
    """
    scheme, _, credential = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not credential.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication failed")

    return await manager.authenticate(credential.strip(), context.ip_address, context.user_agent)

@router.post("/validate", response_model=SessionValidationResult)
async def validate(
    x_session_id: Optional[str] = Header(None, alias="X-Session-Id"),
    context: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Report whether the presented session is valid for this client, with the
    device and IP match flags
    """
    return await manager.validate_session(x_session_id or "", context.ip_address, context.device_fingerprint)

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    force: bool = False,
    current: CurrentSession = Depends(get_current_session),
    manager: SessionManager = Depends(get_session_manager),
):
    await manager.revoke_session(current.session_id, force=force)
    logger.info(f"User {current.user_id} logged out")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/sessions", response_model=List[SessionSummary])
async def list_sessions(
    current: CurrentSession = Depends(get_current_session),
    manager: SessionManager = Depends(get_session_manager),
):
    return await manager.list_user_sessions(current.user_id)

@router.delete("/sessions")
async def revoke_all_sessions(
    current: CurrentSession = Depends(get_current_session),
    manager: SessionManager = Depends(get_session_manager),
):
    """Log the caller out of every device, including this one"""
    revoked = await manager.revoke_all_user_sessions(current.user_id)
    return {"revoked": revoked}
