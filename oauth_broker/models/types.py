"""
Custom column types
"""

from typing import Any, Optional

from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

from oauth_broker.core.encryption import get_token_cipher


class EncryptedText(TypeDecorator):
    """Text column encrypted with the process token cipher (Fernet)."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Optional[str], dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return get_token_cipher().encrypt(value)

    def process_result_value(self, value: Optional[str], dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return get_token_cipher().decrypt(value)
