"""
Delegate invitations, lifecycle and access evaluation
"""

import hmac
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from estate_kit.core import metrics as metric_names
from estate_kit.core.database_utils import SessionFactory, session_scope
from estate_kit.core.encryption import FieldEncryption
from estate_kit.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from estate_kit.core.metrics import MetricsSink
from estate_kit.core.permissions import (
    AccessLevel,
    DelegateStatus,
    ResourceType,
    TERMINAL_STATUSES,
    transition_status,
    validate_permission_matrix,
)
from estate_kit.models.audit import AuditEventType, AuditSeverity, AuditStatus
from estate_kit.models.base import ensure_utc
from estate_kit.models.delegate import Delegate, DelegatePermission
from estate_kit.schemas.delegate import DelegateCreate, DelegateResponse, PermissionGrant
from estate_kit.services.audit_service import AuditService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_id(delegate_id) -> Optional[uuid.UUID]:
    if isinstance(delegate_id, uuid.UUID):
        return delegate_id
    try:
        return uuid.UUID(str(delegate_id))
    except (TypeError, ValueError):
        return None


class DelegateService:
    """
    Owner-driven delegate management and the access evaluator used by
    delegate-scoped resources
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        encryption: FieldEncryption,
        audit: AuditService,
        metrics: MetricsSink,
        default_ttl_days: int = 90,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.encryption = encryption
        self.audit = audit
        self.metrics = metrics
        self.default_ttl_days = default_ttl_days
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _to_response(self, delegate: Delegate) -> DelegateResponse:
        return DelegateResponse(
            id=delegate.id,
            owner_id=delegate.owner_id,
            delegate_user_id=delegate.delegate_user_id,
            email=self.encryption.decrypt(delegate.encrypted_contact),
            role=delegate.role,
            status=delegate.status,
            expires_at=ensure_utc(delegate.expires_at),
            permissions=[
                PermissionGrant(resource_type=p.resource_type, access_level=p.access_level)
                for p in delegate.permissions
            ],
            access_count=delegate.access_count or 0,
            last_accessed_at=ensure_utc(delegate.last_accessed_at),
            created_at=ensure_utc(delegate.created_at),
        )

    def _load(self, db: Session, delegate_id) -> Delegate:
        parsed = _parse_id(delegate_id)
        delegate = db.get(Delegate, parsed) if parsed else None
        if delegate is None:
            raise NotFoundError("Delegate not found")
        return delegate

    def _load_owned(self, db: Session, owner_id: str, delegate_id) -> Delegate:
        delegate = self._load(db, delegate_id)
        if delegate.owner_id != owner_id:
            raise PermissionDeniedError("Only the owner may manage this delegate")
        return delegate

    @staticmethod
    def _grant_rows(permissions: Iterable[PermissionGrant]) -> List[DelegatePermission]:
        return [
            DelegatePermission(resource_type=p.resource_type, access_level=p.access_level)
            for p in permissions
        ]

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def create_delegate(
        self,
        owner_id: str,
        dto: DelegateCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DelegateResponse:
        """
        Invite a delegate in pending status.

        Validation and encryption happen before anything is written, and the
        delegate row and its audit entry commit in one transaction.
        """
        email = (dto.email or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid delegate email")

        validate_permission_matrix(dto.role, [p.as_tuple() for p in dto.permissions])

        now = self.clock()
        if dto.expires_at is None:
            expires_at = now + timedelta(days=self.default_ttl_days)
        else:
            expires_at = ensure_utc(dto.expires_at)
            if expires_at <= now:
                raise ValidationError("Delegate expiry must be in the future")

        encrypted_contact = self.encryption.encrypt(email.lower())

        with session_scope(self.session_factory) as db:
            delegate = Delegate(
                owner_id=owner_id,
                role=dto.role,
                status=DelegateStatus.PENDING,
                expires_at=expires_at,
                encrypted_contact=encrypted_contact,
                access_count=0,
                permissions=self._grant_rows(dto.permissions),
            )
            db.add(delegate)
            db.flush()

            self.audit.record(
                AuditEventType.DELEGATE_INVITE,
                AuditSeverity.INFO,
                user_id=owner_id,
                resource_id=str(delegate.id),
                resource_type="delegate",
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "role": dto.role.value,
                    "delegateEmail": email.lower(),
                    "permissions": [
                        {"resourceType": p.resource_type.value, "accessLevel": p.access_level.value}
                        for p in dto.permissions
                    ],
                    "expiresAt": expires_at.isoformat(),
                },
                db=db,
            )
            response = self._to_response(delegate)

        self.metrics.increment(metric_names.DELEGATE_INVITES, {"role": dto.role.value})
        logger.info(f"Delegate {response.id} invited by {owner_id} as {dto.role.value}")
        return response

    def get_delegate(self, owner_id: str, delegate_id) -> DelegateResponse:
        with session_scope(self.session_factory) as db:
            return self._to_response(self._load_owned(db, owner_id, delegate_id))

    def list_delegates(self, owner_id: str, status: Optional[DelegateStatus] = None) -> List[DelegateResponse]:
        with session_scope(self.session_factory) as db:
            query = db.query(Delegate).filter(Delegate.owner_id == owner_id)
            if status is not None:
                query = query.filter(Delegate.status == DelegateStatus(status))
            return [self._to_response(d) for d in query.order_by(Delegate.created_at).all()]

    def revoke_delegate(self, owner_id: str, delegate_id, ip_address: Optional[str] = None) -> DelegateResponse:
        with session_scope(self.session_factory) as db:
            delegate = self._load_owned(db, owner_id, delegate_id)
            previous = delegate.status
            delegate.status = transition_status(delegate.status, DelegateStatus.REVOKED)

            self.audit.record(
                AuditEventType.DELEGATE_REMOVE,
                AuditSeverity.WARNING,
                user_id=owner_id,
                resource_id=str(delegate.id),
                resource_type="delegate",
                ip_address=ip_address,
                details={"previousStatus": previous.value},
                db=db,
            )
            return self._to_response(delegate)

    def update_permissions(
        self,
        owner_id: str,
        delegate_id,
        permissions: List[PermissionGrant],
        ip_address: Optional[str] = None,
    ) -> DelegateResponse:
        with session_scope(self.session_factory) as db:
            delegate = self._load_owned(db, owner_id, delegate_id)
            if delegate.status in TERMINAL_STATUSES:
                raise ValidationError(f"Cannot update permissions of a {delegate.status.value} delegate")

            validate_permission_matrix(delegate.role, [p.as_tuple() for p in permissions])

            previous = sorted(f"{r.value}:{a.value}" for r, a in delegate.grants())
            delegate.permissions.clear()
            db.flush()
            delegate.permissions.extend(self._grant_rows(permissions))
            db.flush()

            self.audit.record(
                AuditEventType.DELEGATE_PERMISSION_UPDATE,
                AuditSeverity.INFO,
                user_id=owner_id,
                resource_id=str(delegate.id),
                resource_type="delegate",
                ip_address=ip_address,
                details={
                    "previous": previous,
                    "current": sorted(f"{p.resource_type.value}:{p.access_level.value}" for p in permissions),
                },
                db=db,
            )
            return self._to_response(delegate)

    # ------------------------------------------------------------------
    # Delegate operations
    # ------------------------------------------------------------------

    def accept_delegate(
        self,
        delegate_id,
        delegate_user_id: str,
        delegate_email: Optional[str],
        ip_address: Optional[str] = None,
    ) -> DelegateResponse:
        """
        Activate a pending invitation for the invited person.

        ``delegate_email`` must be the caller's verified email and match the
        invited contact; anyone else is refused before the delegate is touched.
        An invitation past its expiry is marked expired instead and the
        acceptance is rejected.
        """
        expired = False
        with session_scope(self.session_factory) as db:
            delegate = self._load(db, delegate_id)
            invited = self.encryption.decrypt(delegate.encrypted_contact)
            presented = (delegate_email or "").strip().lower()
            if not presented or not hmac.compare_digest(presented.encode("utf-8"), invited.encode("utf-8")):
                logger.warning(f"Rejected acceptance of delegate {delegate.id} by {delegate_user_id}")
                raise PermissionDeniedError("Only the invited delegate may accept this invitation")

            now = self.clock()

            if delegate.status == DelegateStatus.PENDING and delegate.is_past_expiry(now):
                delegate.status = transition_status(delegate.status, DelegateStatus.EXPIRED)
                self.audit.record(
                    AuditEventType.DELEGATE_EXPIRED,
                    AuditSeverity.WARNING,
                    user_id=delegate_user_id,
                    resource_id=str(delegate.id),
                    resource_type="delegate",
                    ip_address=ip_address,
                    details={"trigger": "accept"},
                    db=db,
                )
                expired = True
            else:
                delegate.status = transition_status(delegate.status, DelegateStatus.ACTIVE)
                delegate.delegate_user_id = delegate_user_id
                self.audit.record(
                    AuditEventType.DELEGATE_ACCEPT,
                    AuditSeverity.INFO,
                    user_id=delegate_user_id,
                    resource_id=str(delegate.id),
                    resource_type="delegate",
                    ip_address=ip_address,
                    details={"ownerId": delegate.owner_id},
                    db=db,
                )
                response = self._to_response(delegate)

        if expired:
            raise ValidationError("Delegate invitation has expired")
        return response

    def verify_delegate_access(
        self,
        delegate_id,
        resource_type,
        required_access,
        actor_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Decide whether a delegate may use ``required_access`` on ``resource_type``.

        Never raises for a denial: unknown, inactive, expired and under-privileged
        delegates all yield False. Exactly one DELEGATE_ACCESS entry is written
        per call, before the answer is returned.
        """
        severity = AuditSeverity.INFO
        granted = False

        try:
            resource_type = ResourceType(resource_type)
            required_access = AccessLevel(required_access)
        except ValueError:
            resource_type, required_access = str(resource_type), str(required_access)
            well_formed = False
        else:
            well_formed = True

        with session_scope(self.session_factory) as db:
            parsed = _parse_id(delegate_id)
            delegate = db.get(Delegate, parsed) if parsed else None
            now = self.clock()

            if not well_formed:
                reason = "invalid_request"
            elif delegate is None:
                reason = "not_found"
            elif delegate.status == DelegateStatus.EXPIRED:
                reason = "expired"
                severity = AuditSeverity.WARNING
            elif delegate.status not in TERMINAL_STATUSES and delegate.is_past_expiry(now):
                delegate.status = transition_status(delegate.status, DelegateStatus.EXPIRED)
                reason = "expired"
                severity = AuditSeverity.WARNING
            elif delegate.status != DelegateStatus.ACTIVE:
                reason = f"status_{delegate.status.value}"
            elif (resource_type, required_access) in delegate.effective_grants(now):
                granted = True
                reason = "granted"
                delegate.access_count = (delegate.access_count or 0) + 1
                delegate.last_accessed_at = now
            else:
                reason = "insufficient_permission"

            self.audit.record(
                AuditEventType.DELEGATE_ACCESS,
                severity,
                status=AuditStatus.SUCCESS if granted else AuditStatus.FAILURE,
                user_id=actor_id or (delegate.delegate_user_id if delegate else None),
                resource_id=str(delegate_id),
                resource_type="delegate",
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "resourceType": getattr(resource_type, "value", resource_type),
                    "requiredAccess": getattr(required_access, "value", required_access),
                    "accessGranted": granted,
                    "reason": reason,
                },
                db=db,
            )

        if not granted:
            self.metrics.increment(metric_names.DELEGATE_ACCESS_DENIED, {"reason": reason})
        return granted

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def expire_overdue_delegates(self) -> int:
        """
        Move pending and active delegates past their expiry to expired
        """
        now = self.clock()
        with session_scope(self.session_factory) as db:
            overdue = (
                db.query(Delegate)
                .filter(Delegate.status.in_([DelegateStatus.PENDING, DelegateStatus.ACTIVE]))
                .filter(Delegate.expires_at <= now)
                .all()
            )
            for delegate in overdue:
                delegate.status = transition_status(delegate.status, DelegateStatus.EXPIRED)
                self.audit.record(
                    AuditEventType.DELEGATE_EXPIRED,
                    AuditSeverity.INFO,
                    user_id=delegate.owner_id,
                    resource_id=str(delegate.id),
                    resource_type="delegate",
                    details={"trigger": "sweep"},
                    db=db,
                )

        if overdue:
            logger.info(f"Expired {len(overdue)} overdue delegate(s)")
        return len(overdue)
