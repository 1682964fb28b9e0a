"""
Pydantic schemas package
"""

from .session import (
    TokenClaims, UserProfile, SessionRecord, SessionSummary, AuthResult,
    SecurityContext, SessionValidationResult
)
from .delegate import (
    PermissionGrant, DelegateCreate, PermissionsUpdate,
    DelegateResponse, AccessCheckRequest, AccessCheckResponse
)
from .audit import AuditLogFilters, AuditLogResponse
from .webhook import (
    OrderPayload, OrderPaidEvent, OrderCancelledEvent, OrderFailedEvent,
    WebhookEvent, webhook_event_adapter
)

__all__ = [
    # Session schemas
    "TokenClaims", "UserProfile", "SessionRecord", "SessionSummary", "AuthResult",
    "SecurityContext", "SessionValidationResult",

    # Delegate schemas
    "PermissionGrant", "DelegateCreate", "PermissionsUpdate",
    "DelegateResponse", "AccessCheckRequest", "AccessCheckResponse",

    # Audit schemas
    "AuditLogFilters", "AuditLogResponse",

    # Webhook schemas
    "OrderPayload", "OrderPaidEvent", "OrderCancelledEvent", "OrderFailedEvent",
    "WebhookEvent", "webhook_event_adapter",
]
