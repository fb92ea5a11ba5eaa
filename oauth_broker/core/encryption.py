"""
Provider token encryption at rest
"""
import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from .settings import settings

LOG_PREFIX = "[TokenCipher]"


class TokenCipher:
    """Fernet wrapper for access and refresh tokens"""

    def __init__(self, key: Optional[str] = None):
        """
        Args:
            key: Fernet key or passphrase. Falls back to settings, then to the
                 session secret (development only).
        """
        if key is None:
            key = settings.credential_encryption_key
            if key is None:
                if settings.environment == "production":
                    raise RuntimeError("CREDENTIAL_ENCRYPTION_KEY must be set in production")
                logger.warning(f"{LOG_PREFIX} No encryption key configured; deriving one from SECRET_KEY")
                key = settings.secret_key

        raw = key.encode()

        # Non-Fernet keys are treated as passphrases and stretched with PBKDF2
        try:
            self.fernet = Fernet(raw)
        except ValueError:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=b"oauth_broker_token_salt",
                iterations=100000,
            )
            self.fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(raw)))

    def encrypt(self, value: str) -> str:
        return self.fernet.encrypt(value.encode()).decode()

    def decrypt(self, value: str) -> str:
        """
        Raises:
            ValueError: the ciphertext was produced with another key or is corrupt
        """
        try:
            return self.fernet.decrypt(value.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Stored token cannot be decrypted with the configured key") from e


_default_cipher: Optional[TokenCipher] = None


def get_token_cipher() -> TokenCipher:
    """Process-wide cipher instance"""
    global _default_cipher
    if _default_cipher is None:
        _default_cipher = TokenCipher()
    return _default_cipher
