"""
Field-level encryption for sensitive data like delegate contact details
Uses Fernet (symmetric encryption) from cryptography library
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64

from estate_kit.core.exceptions import EncryptionError

logger = logging.getLogger(__name__)

SENSITIVE_MARKERS = ("password", "token", "key", "secret", "credential", "email", "contact")


def is_sensitive_key(name: str) -> bool:
    """True when a detail key names data that must not be stored in clear"""
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_MARKERS)


class FieldEncryption:
    """
    Handles encryption and decryption of sensitive fields using Fernet.
    Fernet tokens carry their own IV and HMAC tag, so a single string is
    enough to round-trip a value.
    """

    def __init__(self, secret: str, salt: str = "estate_kit_field_encryption", iterations: int = 100000):
        self._cipher = self._initialize_cipher(secret, salt, iterations)

    def _initialize_cipher(self, secret: str, salt: str, iterations: int) -> Fernet:
        """
        Derive a Fernet cipher from the configured secret

        Returns:
            Fernet cipher instance
        """
        if not secret or len(secret) < 16:
            raise EncryptionError("Encryption secret is not configured or too short")

        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt.encode(),
                iterations=iterations,
            )
            key_b64 = base64.urlsafe_b64encode(kdf.derive(secret.encode()))
            cipher = Fernet(key_b64)
            logger.info("Field encryption cipher initialized")
            return cipher
        except Exception as e:
            logger.error(f"Failed to initialize encryption cipher: {e}")
            raise EncryptionError(f"Encryption initialization failed: {e}")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt plaintext string

        Args:
            plaintext: String to encrypt

        Returns:
            Fernet token as text
        """
        if not plaintext:
            raise EncryptionError("Cannot encrypt empty string")
        try:
            return self._cipher.encrypt(plaintext.encode()).decode("utf-8")
        except Exception as e:
            logger.error(f"Encryption failed: {e}")
            raise EncryptionError(f"Failed to encrypt data: {e}")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt ciphertext string

        Args:
            ciphertext: Fernet token produced by encrypt()

        Returns:
            Decrypted plaintext string
        """
        if not ciphertext:
            raise EncryptionError("Cannot decrypt empty string")
        try:
            return self._cipher.decrypt(ciphertext.encode()).decode("utf-8")
        except InvalidToken:
            logger.error("Decryption failed: invalid token or wrong key")
            raise EncryptionError("Failed to decrypt data: invalid token")
        except Exception as e:
            logger.error(f"Decryption failed: {e}")
            raise EncryptionError(f"Failed to decrypt data: {e}")

    def encrypt_mapping(self, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Encrypt the string values stored under sensitive keys, recursing into dicts"""
        result = {}
        for name, value in (data or {}).items():
            if isinstance(value, dict):
                result[name] = self.encrypt_mapping(value)
            elif isinstance(value, str) and value and is_sensitive_key(name):
                result[name] = self.encrypt(value)
            else:
                result[name] = value
        return result

    def decrypt_mapping(self, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Inverse of encrypt_mapping"""
        result = {}
        for name, value in (data or {}).items():
            if isinstance(value, dict):
                result[name] = self.decrypt_mapping(value)
            elif isinstance(value, str) and value and is_sensitive_key(name):
                result[name] = self.decrypt(value)
            else:
                result[name] = value
        return result


@lru_cache()
def get_field_encryption() -> FieldEncryption:
    """Build the application's encryption collaborator from settings"""
    from estate_kit.core.config import settings

    return FieldEncryption(settings.field_encryption_secret, settings.FIELD_ENCRYPTION_SALT)
