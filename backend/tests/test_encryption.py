import pytest

from estate_kit.core.encryption import FieldEncryption, is_sensitive_key
from estate_kit.core.exceptions import EncryptionError

pytestmark = pytest.mark.unit


def test_round_trip(encryption):
    token = encryption.encrypt("delegate@example.com")

    assert token != "delegate@example.com"
    assert encryption.decrypt(token) == "delegate@example.com"


def test_each_encryption_uses_a_fresh_iv(encryption):
    assert encryption.encrypt("same") != encryption.encrypt("same")


def test_wrong_key_cannot_decrypt(encryption):
    other = FieldEncryption("a-completely-different-secret", salt="test-salt", iterations=1000)

    with pytest.raises(EncryptionError):
        other.decrypt(encryption.encrypt("secret value"))


def test_tampered_token_is_rejected(encryption):
    token = encryption.encrypt("secret value")
    tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")

    with pytest.raises(EncryptionError):
        encryption.decrypt(tampered)


def test_empty_values_are_rejected(encryption):
    with pytest.raises(EncryptionError):
        encryption.encrypt("")
    with pytest.raises(EncryptionError):
        encryption.decrypt("")


def test_short_secret_is_rejected():
    with pytest.raises(EncryptionError):
        FieldEncryption("short")


def test_mapping_encrypts_only_sensitive_keys(encryption):
    details = {
        "reason": "expired",
        "accessToken": "abc123",
        "nested": {"contactEmail": "x@example.com", "count": 2},
        "accessGranted": False,
    }

    encrypted = encryption.encrypt_mapping(details)

    assert encrypted["reason"] == "expired"
    assert encrypted["accessGranted"] is False
    assert encrypted["accessToken"] != "abc123"
    assert encrypted["nested"]["contactEmail"] != "x@example.com"
    assert encrypted["nested"]["count"] == 2
    assert encryption.decrypt_mapping(encrypted) == details


@pytest.mark.parametrize("name, sensitive", [
    ("password", True),
    ("apiKey", True),
    ("delegateEmail", True),
    ("resourceType", False),
    ("reason", False),
])
def test_sensitive_key_detection(name, sensitive):
    assert is_sensitive_key(name) is sensitive
