"""
Session lifecycle: authentication, validation, revocation and cleanup
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar

from estate_kit.core import metrics as metric_names
from estate_kit.core.exceptions import AuthenticationError, DependencyTimeoutError
from estate_kit.core.metrics import MetricsSink
from estate_kit.models.audit import AuditEventType, AuditSeverity, AuditStatus
from estate_kit.schemas.session import (
    AuthResult,
    SecurityContext,
    SessionRecord,
    SessionSummary,
    SessionValidationResult,
)
from estate_kit.services.audit_service import AuditService
from estate_kit.services.device import generate_device_fingerprint
from estate_kit.services.identity_provider import IdentityProvider
from estate_kit.services.session_store import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Owns every session record. Sessions are bound to the device fingerprint
    and source IP seen at login and capped per user; the oldest-created
    session is evicted when a new login would exceed the cap.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        store: SessionStore,
        audit: AuditService,
        metrics: MetricsSink,
        session_ttl: int = 3600,
        max_concurrent_sessions: int = 3,
        dependency_timeout: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.identity_provider = identity_provider
        self.store = store
        self.audit = audit
        self.metrics = metrics
        self.session_ttl = session_ttl
        self.max_concurrent_sessions = max_concurrent_sessions
        self.dependency_timeout = dependency_timeout
        self.clock = clock

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.dependency_timeout)
        except asyncio.TimeoutError:
            logger.error(f"{what} exceeded {self.dependency_timeout}s")
            raise DependencyTimeoutError(f"{what} timed out")

    async def _audit(self, event_type: AuditEventType, severity: AuditSeverity, **fields) -> None:
        """Write an audit entry on a worker thread so the event loop never waits on the database"""
        await self._bounded(
            asyncio.to_thread(self.audit.record, event_type, severity, **fields),
            "Audit write",
        )

    async def authenticate(self, credential: str, source_ip: str, user_agent: str) -> AuthResult:
        """
        Verify a bearer credential and open a new session for its user

        Raises:
            AuthenticationError: credential rejected or no profile available
            DependencyTimeoutError: identity provider or store did not answer in time
        """
        try:
            if not credential:
                raise AuthenticationError("Empty credential")
            claims = await self._bounded(self.identity_provider.verify_token(credential), "Token verification")
            user = await self._bounded(self.identity_provider.get_user_info(claims.subject), "User profile lookup")
            if user is None:
                raise AuthenticationError("Identity provider returned no profile")
        except AuthenticationError as e:
            logger.warning(f"Authentication rejected from {source_ip}: {e.reason}")
            await self._audit(
                AuditEventType.USER_LOGIN_FAILED,
                AuditSeverity.WARNING,
                status=AuditStatus.FAILURE,
                ip_address=source_ip,
                user_agent=user_agent,
                details={"reason": e.reason},
            )
            raise AuthenticationError(e.reason)

        now = self.clock()
        record = SessionRecord(
            session_id=secrets.token_urlsafe(32),
            user_id=user.user_id,
            user=user,
            device_fingerprint=generate_device_fingerprint(user_agent),
            ip_address=source_ip,
            user_agent=user_agent or "",
            created_at=now,
            last_accessed_at=now,
            expires_at=now + timedelta(seconds=self.session_ttl),
        )

        evicted = await self._bounded(
            self.store.create(record, self.session_ttl, self.max_concurrent_sessions),
            "Session store write",
        )

        try:
            if evicted:
                await self._audit(
                    AuditEventType.SESSION_EVICTED,
                    AuditSeverity.INFO,
                    user_id=user.user_id,
                    resource_type="session",
                    details={"evictedCount": len(evicted), "maxSessions": self.max_concurrent_sessions},
                )
            await self._audit(
                AuditEventType.USER_LOGIN,
                AuditSeverity.INFO,
                user_id=user.user_id,
                resource_type="session",
                ip_address=source_ip,
                user_agent=user_agent,
                details={"deviceFingerprint": record.device_fingerprint},
            )
        except Exception:
            # An unaudited login must not leave a usable session behind
            await self._bounded(self.store.delete(record.session_id), "Session store write")
            raise

        self.metrics.increment(metric_names.SESSIONS_CREATED)
        if evicted:
            self.metrics.increment(metric_names.SESSIONS_EVICTED, amount=len(evicted))
            logger.info(f"Evicted {len(evicted)} session(s) for user {user.user_id}")

        return AuthResult(user=user, session_id=record.session_id, expires_in=self.session_ttl)

    async def validate_session(
        self,
        session_id: str,
        source_ip: str,
        device_fingerprint: str,
    ) -> SessionValidationResult:
        """
        Check a session against the presented IP and device fingerprint.

        The security context is reported for every existing session; the
        last-access time is refreshed only when both signals match.
        """
        record = await self._bounded(self.store.get(session_id), "Session store read") if session_id else None
        now = self.clock()

        if record is None or record.expires_at <= now:
            reason = "expired" if record else "not_found"
            self.metrics.increment(metric_names.SESSION_VALIDATION_FAILURES, {"reason": reason})
            await self._audit(
                AuditEventType.SESSION_VALIDATION_FAILED,
                AuditSeverity.WARNING,
                status=AuditStatus.FAILURE,
                user_id=record.user_id if record else None,
                resource_type="session",
                ip_address=source_ip,
                details={"reason": reason},
            )
            return SessionValidationResult(is_valid=False)

        device_match = record.device_fingerprint == device_fingerprint
        ip_match = record.ip_address == source_ip
        concurrent = await self._bounded(
            self.store.count_user_sessions(record.user_id), "Session store read"
        )
        context = SecurityContext(device_match=device_match, ip_match=ip_match, concurrent=concurrent)
        is_valid = device_match and ip_match

        if not is_valid:
            reason = "device_mismatch" if not device_match else "ip_mismatch"
            self.metrics.increment(metric_names.SESSION_VALIDATION_FAILURES, {"reason": reason})
            await self._audit(
                AuditEventType.SESSION_VALIDATION_FAILED,
                AuditSeverity.WARNING,
                status=AuditStatus.FAILURE,
                user_id=record.user_id,
                resource_type="session",
                ip_address=source_ip,
                details={"reason": reason, "deviceMatch": device_match, "ipMatch": ip_match},
            )
            return SessionValidationResult(is_valid=False, security_context=context)

        refreshed = record.model_copy(update={
            "last_accessed_at": now,
            "expires_at": now + timedelta(seconds=self.session_ttl),
        })
        await self._bounded(self.store.touch(refreshed, self.session_ttl), "Session store write")
        return SessionValidationResult(is_valid=True, user=record.user, security_context=context)

    async def revoke_session(self, session_id: str, force: bool = False) -> None:
        """
        Remove a session. Unknown ids are ignored.
        """
        record = await self._bounded(self.store.delete(session_id), "Session store write")
        if record is None:
            logger.debug("Revoke requested for unknown session")
            return

        await self._audit(
            AuditEventType.USER_LOGOUT,
            AuditSeverity.INFO,
            user_id=record.user_id,
            resource_type="session",
            ip_address=record.ip_address,
            details={"force": force},
        )

    async def revoke_all_user_sessions(self, user_id: str) -> int:
        """Forced logout from every device; returns the number of sessions removed"""
        records = await self._bounded(self.store.list_user_sessions(user_id), "Session store read")
        for record in records:
            await self.revoke_session(record.session_id, force=True)
        return len(records)

    async def list_user_sessions(self, user_id: str) -> List[SessionSummary]:
        records = await self._bounded(self.store.list_user_sessions(user_id), "Session store read")
        return [SessionSummary.from_record(r) for r in records]

    async def cleanup_expired_sessions(self) -> int:
        """
        Remove sessions whose last access is older than the session TTL
        """
        cutoff = self.clock() - timedelta(seconds=self.session_ttl)
        removed = await self._bounded(self.store.purge_expired(cutoff), "Session purge")
        if removed:
            await self._audit(
                AuditEventType.SYSTEM_MAINTENANCE,
                AuditSeverity.INFO,
                resource_type="session",
                details={"task": "session_cleanup", "removed": len(removed)},
            )
        logger.info(f"Session cleanup removed {len(removed)} session(s)")
        return len(removed)

    def fingerprint(self, user_agent: Optional[str]) -> str:
        return generate_device_fingerprint(user_agent or "")
