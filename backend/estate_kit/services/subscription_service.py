"""
Shopify billing webhooks: signature verification and subscription state changes
"""

import base64
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import pydantic

from estate_kit.core.database_utils import SessionFactory, session_scope
from estate_kit.core.exceptions import NotFoundError, ValidationError
from estate_kit.models.audit import AuditEventType, AuditSeverity
from estate_kit.models.base import ensure_utc
from estate_kit.models.subscription import Subscription, SubscriptionStatus
from estate_kit.schemas.webhook import (
    OrderCancelledEvent,
    OrderFailedEvent,
    OrderPaidEvent,
    SUPPORTED_TOPICS,
    WebhookEvent,
    webhook_event_adapter,
)
from estate_kit.services.audit_service import AuditService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def verify_webhook(secret: str, data: bytes, hmac_header: str) -> bool:
    """
    Verify Shopify webhook HMAC signature

    Args:
        secret: Shopify API secret
        data: Raw webhook body
        hmac_header: Value of X-Shopify-Hmac-Sha256

    Returns:
        True if signature is valid
    """
    if not secret or not hmac_header:
        return False

    expected_signature = base64.b64encode(
        hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    ).decode("utf-8")
    return hmac.compare_digest(expected_signature, hmac_header)


def parse_webhook(topic: str, payload: Dict[str, Any]) -> WebhookEvent:
    """
    Validate a webhook body into its topic-specific event type
    """
    if topic not in SUPPORTED_TOPICS:
        raise ValidationError(f"Unsupported webhook topic: {topic}")
    try:
        return webhook_event_adapter.validate_python({"topic": topic, "order": payload})
    except pydantic.ValidationError as e:
        raise ValidationError(f"Malformed {topic} payload: {e.error_count()} error(s)")


class SubscriptionService:
    def __init__(
        self,
        session_factory: SessionFactory,
        audit: AuditService,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.clock = clock

    def handle_webhook(self, event: WebhookEvent) -> Dict[str, Any]:
        """
        Apply a billing event to the matching subscription and audit the change
        """
        with session_scope(self.session_factory) as db:
            subscription = (
                db.query(Subscription)
                .filter(Subscription.shopify_subscription_id == event.order.id)
                .first()
            )
            if subscription is None:
                logger.warning(f"Webhook {event.topic} for unknown subscription {event.order.id}")
                raise NotFoundError("Subscription not found")

            previous = subscription.status
            severity = AuditSeverity.INFO
            now = self.clock()

            if isinstance(event, OrderPaidEvent):
                subscription.status = SubscriptionStatus.ACTIVE
                subscription.last_billing_date = ensure_utc(event.order.processed_at) or now
            elif isinstance(event, OrderCancelledEvent):
                subscription.status = SubscriptionStatus.CANCELLED
                subscription.end_date = ensure_utc(event.order.cancelled_at) or now
            elif isinstance(event, OrderFailedEvent):
                subscription.status = SubscriptionStatus.PAST_DUE
                severity = AuditSeverity.WARNING

            self.audit.record(
                AuditEventType.SUBSCRIPTION_CHANGE,
                severity,
                user_id=subscription.user_id,
                resource_id=str(subscription.id),
                resource_type="subscription",
                details={
                    "topic": event.topic,
                    "previousStatus": previous.value,
                    "status": subscription.status.value,
                },
                db=db,
            )
            logger.info(
                f"Subscription {subscription.id} moved {previous.value} -> {subscription.status.value} via {event.topic}"
            )
            return subscription.to_dict()

    def get_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as db:
            subscription = (
                db.query(Subscription)
                .filter(Subscription.user_id == user_id)
                .order_by(Subscription.created_at.desc())
                .first()
            )
            return subscription.to_dict() if subscription else None
