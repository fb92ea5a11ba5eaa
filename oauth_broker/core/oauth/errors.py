"""
OAuth flow errors.

Every error carries a stable ``reason`` code. The flow orchestrator turns
them into failure outcomes; services outside the flow (token refresh,
disconnect) let them propagate to the API layer.
"""

from typing import Optional


class OAuthError(Exception):
    """Base class for OAuth errors."""

    reason: str = "oauth_error"

    def __init__(self, message: str = "", *, provider: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.provider = provider
        self.detail = detail


class ProviderNotConfigured(OAuthError):
    reason = "provider_not_configured"


class CsrfStateMismatch(OAuthError):
    reason = "csrf_mismatch"


class MissingAuthorizationCode(OAuthError):
    reason = "no_code"


class ProviderDenied(OAuthError):
    """The user declined consent or the provider returned an ``error`` parameter."""

    reason = "provider_denied"


class TokenExchangeError(OAuthError):
    """Token endpoint failure. ``detail`` holds the provider's raw error text."""

    reason = "provider_error"


class UserInfoError(OAuthError):
    reason = "provider_error"


class TransportError(OAuthError):
    """Network failure talking to a provider (timeout, connection refused, ...)."""

    reason = "provider_error"


class RefreshNotSupported(OAuthError):
    reason = "refresh_not_supported"


class TokenExpiredAndRefreshFailed(OAuthError):
    """The user must go through an interactive login/link flow again."""

    reason = "token_expired"


class NotAuthenticated(OAuthError):
    reason = "not_authenticated"


class MissingRequiredEmail(OAuthError):
    reason = "missing_email"


class IdentityAlreadyLinked(OAuthError):
    """The provider identity is already connected to a different local user."""

    reason = "identity_already_linked"


class DuplicateConnectionRace(OAuthError):
    """A concurrent insert won a uniqueness race. Recovered by retrying the lookup."""

    reason = "duplicate_connection_race"


class ConnectionNotFound(OAuthError):
    reason = "connection_not_found"


class EntropyUnavailable(OAuthError):
    """The OS random source failed. Fatal; there is no weaker fallback."""

    reason = "entropy_unavailable"
