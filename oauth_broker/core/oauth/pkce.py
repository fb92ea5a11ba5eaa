"""
PKCE (RFC 7636) and CSRF state generation.
"""

import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from oauth_broker.core.oauth.errors import EntropyUnavailable

VERIFIER_BYTES = 32
STATE_BYTES = 32
CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PkcePair:
    verifier: str
    challenge: str
    method: str = CHALLENGE_METHOD


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _random_bytes(n: int) -> bytes:
    try:
        return secrets.token_bytes(n)
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailable(f"Secure random source failed: {e}") from e


def compute_s256_challenge(verifier: str) -> str:
    """base64url(SHA-256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce() -> PkcePair:
    """
    Generate a PKCE verifier/challenge pair.

    The verifier encodes 32 random bytes, giving 43 URL-safe characters.

    Raises:
        EntropyUnavailable: the OS random source failed
    """
    verifier = _b64url(_random_bytes(VERIFIER_BYTES))
    return PkcePair(verifier=verifier, challenge=compute_s256_challenge(verifier))


def generate_state() -> str:
    """Random CSRF state, independent of any PKCE verifier."""
    return _b64url(_random_bytes(STATE_BYTES))


def verify_pkce(verifier: str, challenge: str) -> bool:
    return hmac.compare_digest(compute_s256_challenge(verifier), challenge)
