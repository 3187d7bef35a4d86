"""Field-level encryption for gateway credentials.

Channel instance API keys and webhook secrets are stored encrypted with Fernet.
Values carry an 'enc:' prefix so rows written before a key was configured
still read back as plaintext.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:"


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""
    pass


class EncryptionService:
    """Encrypts and decrypts credential values with a configured Fernet key."""

    def __init__(self, key: str | None) -> None:
        self._fernet: Optional[Fernet] = None
        if not key:
            logger.warning("No encryption key configured - credentials stored as plaintext")
            return
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as e:
            raise EncryptionError(f"Invalid FIELD_ENCRYPTION_KEY format: {e}") from e

    @property
    def is_enabled(self) -> bool:
        """Check if encryption is enabled (key is configured)."""
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a value, returning it with the 'enc:' marker.

        Returns the value unchanged when no key is configured.
        """
        if not plaintext or not self._fernet:
            return plaintext
        if plaintext.startswith(ENCRYPTED_PREFIX):
            return plaintext
        return ENCRYPTED_PREFIX + self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value written by encrypt().

        Raises:
            EncryptionError: If the value is encrypted and cannot be decrypted
        """
        if not ciphertext or not ciphertext.startswith(ENCRYPTED_PREFIX):
            return ciphertext
        if not self._fernet:
            raise EncryptionError("Cannot decrypt: encryption key not configured")
        try:
            return self._fernet.decrypt(ciphertext[len(ENCRYPTED_PREFIX):].encode()).decode()
        except InvalidToken:
            raise EncryptionError("Failed to decrypt: invalid token or wrong key")


_encryption_service: Optional[EncryptionService] = None


def get_encryption_service() -> EncryptionService:
    """Get the process-wide encryption service."""
    global _encryption_service
    if _encryption_service is None:
        # Import here to avoid circular import
        from app.settings import settings

        _encryption_service = EncryptionService(settings.field_encryption_key)
    return _encryption_service
