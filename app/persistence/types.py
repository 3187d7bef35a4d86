"""Custom SQLAlchemy types for the application."""

from typing import Optional

from sqlalchemy import String, TypeDecorator

from app.core.encryption import get_encryption_service


class EncryptedString(TypeDecorator):
    """String column that is encrypted at rest.

    Usage:
        api_key = Column(EncryptedString(255), nullable=True)

    Encrypted values are several times longer than their plaintext, so the
    underlying column is sized at 3x the requested length (minimum 512).
    """

    impl = String
    cache_ok = True

    def __init__(self, length: Optional[int] = None):
        super().__init__(max((length or 0) * 3, 512))

    def process_bind_param(self, value: Optional[str], dialect) -> Optional[str]:
        if value is None:
            return None
        return get_encryption_service().encrypt(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[str]:
        if value is None:
            return None
        return get_encryption_service().decrypt(value)
