"""
Shared FastAPI dependencies: service wiring and the authenticated caller
"""

import ipaddress
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from estate_kit.core.config import settings
from estate_kit.core.encryption import get_field_encryption
from estate_kit.core.metrics import PrometheusMetrics
from estate_kit.schemas.session import UserProfile
from estate_kit.services.audit_service import AuditService
from estate_kit.services.delegate_service import DelegateService
from estate_kit.services.device import generate_device_fingerprint
from estate_kit.services.identity_provider import Auth0IdentityProvider
from estate_kit.services.session_manager import SessionManager
from estate_kit.services.session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from estate_kit.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


@lru_cache()
def get_metrics() -> PrometheusMetrics:
    return PrometheusMetrics()


@lru_cache()
def get_audit_service() -> AuditService:
    from estate_kit.core.database import SessionLocal

    return AuditService(SessionLocal, get_field_encryption())


@lru_cache()
def get_session_store() -> SessionStore:
    if settings.SESSION_BACKEND == "memory":
        return InMemorySessionStore()
    return RedisSessionStore.from_url(settings.REDIS_URL)


@lru_cache()
def get_session_manager() -> SessionManager:
    identity_provider = Auth0IdentityProvider(
        domain=settings.AUTH0_DOMAIN,
        audience=settings.AUTH0_AUDIENCE,
        management_token=settings.AUTH0_MANAGEMENT_TOKEN,
        timeout=settings.DEPENDENCY_TIMEOUT_SECONDS,
    )
    return SessionManager(
        identity_provider=identity_provider,
        store=get_session_store(),
        audit=get_audit_service(),
        metrics=get_metrics(),
        session_ttl=settings.SESSION_TTL_SECONDS,
        max_concurrent_sessions=settings.MAX_CONCURRENT_SESSIONS,
        dependency_timeout=settings.DEPENDENCY_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_delegate_service() -> DelegateService:
    from estate_kit.core.database import SessionLocal

    return DelegateService(
        SessionLocal,
        get_field_encryption(),
        get_audit_service(),
        get_metrics(),
        default_ttl_days=settings.DEFAULT_DELEGATE_TTL_DAYS,
    )


@lru_cache()
def get_subscription_service() -> SubscriptionService:
    from estate_kit.core.database import SessionLocal

    return SubscriptionService(SessionLocal, get_audit_service())


def _is_trusted_proxy(address: str, trusted: List[str]) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    for entry in trusted:
        try:
            if ip in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring malformed TRUSTED_PROXIES entry: {entry}")
    return False


def client_ip(request: Request, trusted_proxies: Optional[List[str]] = None) -> str:
    """
    Address of the client as seen by the first untrusted hop.

    X-Forwarded-For is only read when the socket peer is a trusted proxy;
    the chain is then walked from the right, skipping further trusted
    proxies, so a client cannot choose its own address by sending the header.
    """
    trusted = settings.TRUSTED_PROXIES if trusted_proxies is None else trusted_proxies
    peer = request.client.host if request.client else ""
    if not trusted or not _is_trusted_proxy(peer, trusted):
        return peer

    forwarded = request.headers.get("X-Forwarded-For", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if not _is_trusted_proxy(hop, trusted):
            return hop
    return hops[0] if hops else peer


@dataclass
class RequestContext:
    ip_address: str
    user_agent: str
    device_fingerprint: str


def get_request_context(request: Request) -> RequestContext:
    user_agent = request.headers.get("User-Agent", "")
    return RequestContext(
        ip_address=client_ip(request),
        user_agent=user_agent,
        device_fingerprint=generate_device_fingerprint(user_agent),
    )


@dataclass
class CurrentSession:
    session_id: str
    user: UserProfile
    context: RequestContext

    @property
    def user_id(self) -> str:
        return self.user.user_id


async def get_current_session(
    x_session_id: Optional[str] = Header(None, alias="X-Session-Id"),
    context: RequestContext = Depends(get_request_context),
    manager: SessionManager = Depends(get_session_manager),
) -> CurrentSession:
    """
    Resolve the caller's session; anything short of a fully valid session is a 401
    """
    if not x_session_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication failed")

    result = await manager.validate_session(x_session_id, context.ip_address, context.device_fingerprint)
    if not result.is_valid or result.user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication failed")

    return CurrentSession(session_id=x_session_id, user=result.user, context=context)
