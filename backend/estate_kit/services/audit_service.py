"""
Append-only audit log writer and reader
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from estate_kit.core.database_utils import SessionFactory, session_scope
from estate_kit.core.encryption import FieldEncryption
from estate_kit.models.audit import AuditEventType, AuditLog, AuditSeverity, AuditStatus
from estate_kit.schemas.audit import AuditLogFilters

logger = logging.getLogger(__name__)


class AuditService:
    """
    Writes audit entries synchronously. A failed write raises, so callers
    never return a decision that was not recorded.
    """

    def __init__(self, session_factory: SessionFactory, encryption: FieldEncryption):
        self.session_factory = session_factory
        self.encryption = encryption

    def record(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity = AuditSeverity.INFO,
        *,
        status: AuditStatus = AuditStatus.SUCCESS,
        user_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        db: Optional[Session] = None,
    ) -> AuditLog:
        """
        Append one audit entry.

        When ``db`` is given the entry joins the caller's transaction and is
        committed together with the caller's changes; otherwise it is written
        in its own transaction.
        """
        entry = AuditLog(
            event_type=event_type,
            severity=severity,
            status=status,
            user_id=user_id,
            resource_id=resource_id,
            resource_type=resource_type,
            ip_address=ip_address,
            user_agent=user_agent,
            details=self.encryption.encrypt_mapping(details),
        )

        if db is not None:
            db.add(entry)
            db.flush()
        else:
            with session_scope(self.session_factory) as own_db:
                own_db.add(entry)

        log = logger.warning if severity in (AuditSeverity.WARNING, AuditSeverity.ERROR, AuditSeverity.CRITICAL) else logger.info
        log(f"Audit {event_type.value} user={user_id} resource={resource_type}:{resource_id} status={status.value}")
        return entry

    def list_logs(self, filters: AuditLogFilters) -> List[Dict[str, Any]]:
        """
        Return matching entries newest first, with sensitive details decrypted
        """
        with session_scope(self.session_factory) as db:
            query = db.query(AuditLog)
            if filters.user_id:
                query = query.filter(AuditLog.user_id == filters.user_id)
            if filters.event_type:
                query = query.filter(AuditLog.event_type == filters.event_type)
            if filters.severity:
                query = query.filter(AuditLog.severity == filters.severity)
            if filters.start:
                query = query.filter(AuditLog.created_at >= filters.start)
            if filters.end:
                query = query.filter(AuditLog.created_at <= filters.end)

            entries = (
                query.order_by(AuditLog.created_at.desc(), AuditLog.id)
                .offset(filters.offset)
                .limit(filters.limit)
                .all()
            )

            results = []
            for entry in entries:
                data = entry.to_dict()
                data["details"] = self.encryption.decrypt_mapping(entry.details)
                results.append(data)
            return results
