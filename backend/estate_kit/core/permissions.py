"""
Delegate roles, resource types and the static role permission matrix.

Everything in this module is pure: no I/O, no clock reads. Services call
these helpers immediately before persisting a change.
"""

import enum
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Set, Tuple

from estate_kit.core.exceptions import ValidationError


class DelegateRole(str, enum.Enum):
    EXECUTOR = "executor"
    HEALTHCARE_PROXY = "healthcare_proxy"
    FINANCIAL_ADVISOR = "financial_advisor"
    LEGAL_ADVISOR = "legal_advisor"


class ResourceType(str, enum.Enum):
    PERSONAL_INFO = "PERSONAL_INFO"
    FINANCIAL_DATA = "FINANCIAL_DATA"
    MEDICAL_DATA = "MEDICAL_DATA"
    LEGAL_DOCS = "LEGAL_DOCS"


class AccessLevel(str, enum.Enum):
    READ = "READ"
    WRITE = "WRITE"
    NONE = "NONE"


class DelegateStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


Grant = Tuple[ResourceType, AccessLevel]

ROLE_PERMISSION_MATRIX: Dict[DelegateRole, FrozenSet[Grant]] = {
    DelegateRole.EXECUTOR: frozenset({
        (ResourceType.PERSONAL_INFO, AccessLevel.READ),
        (ResourceType.FINANCIAL_DATA, AccessLevel.READ),
        (ResourceType.LEGAL_DOCS, AccessLevel.READ),
    }),
    DelegateRole.HEALTHCARE_PROXY: frozenset({
        (ResourceType.PERSONAL_INFO, AccessLevel.READ),
        (ResourceType.MEDICAL_DATA, AccessLevel.READ),
        (ResourceType.LEGAL_DOCS, AccessLevel.READ),
    }),
    DelegateRole.FINANCIAL_ADVISOR: frozenset({
        (ResourceType.FINANCIAL_DATA, AccessLevel.READ),
    }),
    DelegateRole.LEGAL_ADVISOR: frozenset({
        (ResourceType.PERSONAL_INFO, AccessLevel.READ),
        (ResourceType.LEGAL_DOCS, AccessLevel.READ),
        (ResourceType.FINANCIAL_DATA, AccessLevel.READ),
    }),
}

TERMINAL_STATUSES = frozenset({DelegateStatus.EXPIRED, DelegateStatus.REVOKED})

ALLOWED_TRANSITIONS: Dict[DelegateStatus, FrozenSet[DelegateStatus]] = {
    DelegateStatus.PENDING: frozenset({DelegateStatus.ACTIVE, DelegateStatus.REVOKED, DelegateStatus.EXPIRED}),
    DelegateStatus.ACTIVE: frozenset({DelegateStatus.EXPIRED, DelegateStatus.REVOKED}),
    DelegateStatus.EXPIRED: frozenset(),
    DelegateStatus.REVOKED: frozenset(),
}


def _normalize(grant) -> Grant:
    resource_type, access_level = grant
    try:
        return ResourceType(resource_type), AccessLevel(access_level)
    except ValueError:
        raise ValidationError("Invalid permissions for role")


def validate_permission_matrix(role, permissions: Iterable) -> None:
    """
    Raise ValidationError unless every (resource_type, access_level) pair is
    allowed for the role. Empty grant lists and repeated resource types are
    rejected as well.
    """
    try:
        role = DelegateRole(role)
    except ValueError:
        raise ValidationError(f"Unknown delegate role: {role}")

    grants = [_normalize(grant) for grant in permissions]
    if not grants:
        raise ValidationError("At least one permission is required")

    seen: Set[ResourceType] = set()
    for resource_type, _ in grants:
        if resource_type in seen:
            raise ValidationError(f"Duplicate permission for resource type {resource_type.value}")
        seen.add(resource_type)

    allowed = ROLE_PERMISSION_MATRIX[role]
    for grant in grants:
        if grant not in allowed:
            raise ValidationError("Invalid permissions for role")


def effective_permissions(role, grants: Iterable) -> FrozenSet[Grant]:
    """Intersection of explicit grants and the role's maximum matrix"""
    allowed = ROLE_PERMISSION_MATRIX.get(DelegateRole(role), frozenset())
    return frozenset(_normalize(grant) for grant in grants) & allowed


def is_expired(expires_at: datetime, now: datetime) -> bool:
    return now >= expires_at


def transition_status(current, target) -> DelegateStatus:
    """Return the target status if the move is legal, otherwise raise"""
    current = DelegateStatus(current)
    target = DelegateStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(f"Cannot transition delegate from {current.value} to {target.value}")
    return target
