"""
Static permission matrix and delegate status transitions
"""

from datetime import datetime, timedelta, timezone

import pytest

from estate_kit.core.exceptions import ValidationError
from estate_kit.core.permissions import (
    AccessLevel,
    DelegateRole,
    DelegateStatus,
    ROLE_PERMISSION_MATRIX,
    ResourceType,
    effective_permissions,
    is_expired,
    transition_status,
    validate_permission_matrix,
)

pytestmark = pytest.mark.unit

R = AccessLevel.READ
W = AccessLevel.WRITE


def test_matrix_contents():
    assert ROLE_PERMISSION_MATRIX[DelegateRole.FINANCIAL_ADVISOR] == {(ResourceType.FINANCIAL_DATA, R)}
    assert (ResourceType.MEDICAL_DATA, R) in ROLE_PERMISSION_MATRIX[DelegateRole.HEALTHCARE_PROXY]
    assert (ResourceType.MEDICAL_DATA, R) not in ROLE_PERMISSION_MATRIX[DelegateRole.EXECUTOR]
    for allowed in ROLE_PERMISSION_MATRIX.values():
        assert all(level == R for _, level in allowed)


def test_subset_of_matrix_is_accepted():
    validate_permission_matrix(
        DelegateRole.HEALTHCARE_PROXY,
        [(ResourceType.MEDICAL_DATA, R), (ResourceType.LEGAL_DOCS, R)],
    )


def test_string_values_are_accepted():
    validate_permission_matrix("legal_advisor", [("LEGAL_DOCS", "READ")])


@pytest.mark.parametrize(
    "role, permissions",
    [
        (DelegateRole.FINANCIAL_ADVISOR, [(ResourceType.MEDICAL_DATA, W)]),
        (DelegateRole.FINANCIAL_ADVISOR, [(ResourceType.FINANCIAL_DATA, W)]),
        (DelegateRole.EXECUTOR, [(ResourceType.MEDICAL_DATA, R)]),
        (DelegateRole.LEGAL_ADVISOR, [(ResourceType.LEGAL_DOCS, R), (ResourceType.MEDICAL_DATA, R)]),
        (DelegateRole.EXECUTOR, [("NOT_A_RESOURCE", "READ")]),
    ],
)
def test_out_of_matrix_grants_are_rejected(role, permissions):
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_matrix(role, permissions)
    assert exc_info.value.message == "Invalid permissions for role"


def test_empty_grants_are_rejected():
    with pytest.raises(ValidationError):
        validate_permission_matrix(DelegateRole.EXECUTOR, [])


def test_duplicate_resource_types_are_rejected():
    with pytest.raises(ValidationError):
        validate_permission_matrix(
            DelegateRole.EXECUTOR,
            [(ResourceType.LEGAL_DOCS, R), (ResourceType.LEGAL_DOCS, R)],
        )


def test_unknown_role_is_rejected():
    with pytest.raises(ValidationError):
        validate_permission_matrix("butler", [(ResourceType.LEGAL_DOCS, R)])


def test_effective_permissions_is_intersection_with_matrix():
    grants = [(ResourceType.FINANCIAL_DATA, R), (ResourceType.MEDICAL_DATA, R)]

    assert effective_permissions(DelegateRole.FINANCIAL_ADVISOR, grants) == {(ResourceType.FINANCIAL_DATA, R)}


def test_is_expired_is_inclusive():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    assert is_expired(now, now)
    assert is_expired(now - timedelta(seconds=1), now)
    assert not is_expired(now + timedelta(seconds=1), now)


@pytest.mark.parametrize(
    "current, target",
    [
        (DelegateStatus.PENDING, DelegateStatus.ACTIVE),
        (DelegateStatus.PENDING, DelegateStatus.REVOKED),
        (DelegateStatus.PENDING, DelegateStatus.EXPIRED),
        (DelegateStatus.ACTIVE, DelegateStatus.EXPIRED),
        (DelegateStatus.ACTIVE, DelegateStatus.REVOKED),
    ],
)
def test_allowed_transitions(current, target):
    assert transition_status(current, target) == target


@pytest.mark.parametrize(
    "current, target",
    [
        (DelegateStatus.EXPIRED, DelegateStatus.ACTIVE),
        (DelegateStatus.REVOKED, DelegateStatus.ACTIVE),
        (DelegateStatus.EXPIRED, DelegateStatus.REVOKED),
        (DelegateStatus.REVOKED, DelegateStatus.EXPIRED),
        (DelegateStatus.ACTIVE, DelegateStatus.PENDING),
        (DelegateStatus.ACTIVE, DelegateStatus.ACTIVE),
    ],
)
def test_terminal_and_backward_transitions_are_rejected(current, target):
    with pytest.raises(ValidationError):
        transition_status(current, target)
