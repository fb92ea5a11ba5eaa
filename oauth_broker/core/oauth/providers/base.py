"""
Base class for provider adapters.

Each provider (google, facebook, linkedin, microsoft) subclasses
``BaseProviderAdapter`` and fills in endpoints, default scopes and the
mapping from its profile payload to ``CanonicalUserInfo``. The authorization
code grant (with PKCE) and the refresh grant are shared here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Type
from urllib.parse import urlencode

from loguru import logger

from oauth_broker.core.oauth.config import OAuthProviderConfig
from oauth_broker.core.oauth.errors import (
    OAuthError,
    RefreshNotSupported,
    TokenExchangeError,
    TransportError,
    UserInfoError,
)
from oauth_broker.core.oauth.pkce import CHALLENGE_METHOD
from oauth_broker.core.oauth.transport import HttpTransport, TransportResponse

LOG_PREFIX = "[OAuthProvider]"


@dataclass
class TokenSet:
    """Tokens returned by a token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None  # None: provider issued no expiry
    token_type: str = "Bearer"
    scope: Optional[str] = None


@dataclass
class CanonicalUserInfo:
    """
    Provider-independent profile.

    All adapters return this structure so the reconciler never sees
    provider-specific field names.
    """

    provider_id: str  # Stable subject identifier
    email: Optional[str]
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    display_name: Optional[str] = None
    picture_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)  # Untouched provider payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "email": self.email,
            "given_name": self.given_name,
            "family_name": self.family_name,
            "display_name": self.display_name,
            "picture_url": self.picture_url,
            "raw": self.raw,
        }


def _provider_error_text(response: TransportResponse) -> str:
    """Best-effort extraction of the provider's error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            # Graph APIs nest the error object
            return str(error.get("message") or error.get("code") or error)
        description = body.get("error_description")
        if error and description:
            return f"{error}: {description}"
        if error:
            return str(error)
    return response.text or f"HTTP {response.status_code}"


class BaseProviderAdapter(ABC):
    """
    Provider adapter interface.

    Subclasses set the class attributes below and implement ``map_user_info``.
    """

    name: str = "base"
    authorize_endpoint: str = ""
    token_endpoint: str = ""
    userinfo_endpoint: str = ""
    default_scopes: List[str] = []
    scope_separator: str = " "
    # Facebook's flow carries its own state parameter; the shared state comparison is skipped
    manages_own_state: bool = False
    supports_refresh: bool = False

    def __init__(self, config: OAuthProviderConfig, transport: HttpTransport):
        self.config = config
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    # ==================== Authorization URL ====================

    def get_authorize_endpoint(self) -> str:
        return self.authorize_endpoint

    def get_token_endpoint(self) -> str:
        return self.token_endpoint

    def get_userinfo_endpoint(self) -> str:
        return self.userinfo_endpoint

    def resolve_scopes(self, scopes: Optional[List[str]] = None) -> List[str]:
        """Provider defaults, then configured extras, then per-call extras; de-duplicated."""
        merged: List[str] = []
        for scope in [*self.default_scopes, *self.config.scopes, *(scopes or [])]:
            if scope and scope not in merged:
                merged.append(scope)
        return merged

    def extra_authorization_params(self) -> Dict[str, str]:
        """Provider-specific query parameters (access_type, response_mode, ...)."""
        return {}

    def authorization_url(
        self,
        state: str,
        code_challenge: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ) -> str:
        params: Dict[str, str] = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri or self.config.redirect_uri,
            "response_type": "code",
            "scope": self.scope_separator.join(self.resolve_scopes(scopes)),
            "state": state,
        }
        params.update(self.extra_authorization_params())
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = CHALLENGE_METHOD
        return f"{self.get_authorize_endpoint()}?{urlencode(params)}"

    # ==================== Token exchange ====================

    def _parse_token_response(
        self,
        response: TransportResponse,
        action: str,
        previous_refresh_token: Optional[str] = None,
        error_cls: Type[OAuthError] = TokenExchangeError,
    ) -> TokenSet:
        if not response.ok:
            error_text = _provider_error_text(response)
            logger.error(f"{LOG_PREFIX} {self.name} {action} failed: {response.status_code} - {error_text}")
            raise error_cls(
                f"{self.config.display_name} {action} failed: {error_text}",
                provider=self.name,
                detail=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            raise error_cls(
                f"{self.config.display_name} {action} returned a malformed response",
                provider=self.name,
                detail=response.text,
            )

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise error_cls(
                f"{self.config.display_name} {action} returned no access token",
                provider=self.name,
                detail=response.text,
            )

        expires_at = None
        expires_in = data.get("expires_in")
        if expires_in not in (None, ""):
            try:
                expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                logger.warning(f"{LOG_PREFIX} {self.name} returned a non-numeric expires_in: {expires_in!r}")

        return TokenSet(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )

    async def exchange_code(
        self,
        code: str,
        verifier: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ) -> TokenSet:
        """
        Authorization code grant.

        Args:
            code: Authorization code from the callback
            verifier: PKCE verifier stored when the redirect was issued
            redirect_uri: Must match the one sent to the authorize endpoint

        Raises:
            TokenExchangeError: non-2xx, malformed body, or missing access_token
            TransportError: network failure
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": redirect_uri or self.config.redirect_uri,
        }
        if verifier:
            form["code_verifier"] = verifier

        response = await self.transport.post_form(
            self.get_token_endpoint(), form, headers={"Accept": "application/json"}
        )
        tokens = self._parse_token_response(response, "token exchange")
        logger.info(f"{LOG_PREFIX} Token exchange successful for {self.name}")
        return tokens

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        """
        Refresh token grant. The old refresh token is kept when the provider omits a new one.

        Raises:
            RefreshNotSupported: provider has no refresh grant
            TokenExchangeError: refresh rejected
        """
        if not self.supports_refresh:
            raise RefreshNotSupported(
                f"{self.config.display_name} does not support token refresh", provider=self.name
            )

        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        form.update(self.extra_refresh_params())

        response = await self.transport.post_form(
            self.get_token_endpoint(), form, headers={"Accept": "application/json"}
        )
        tokens = self._parse_token_response(response, "token refresh", previous_refresh_token=refresh_token)
        logger.info(f"{LOG_PREFIX} Token refreshed for {self.name}")
        return tokens

    def extra_refresh_params(self) -> Dict[str, str]:
        return {}

    # ==================== User info ====================

    def userinfo_params(self) -> Optional[Dict[str, str]]:
        return None

    async def fetch_user_info(self, access_token: str) -> CanonicalUserInfo:
        """
        Fetch and map the provider profile.

        Raises:
            UserInfoError: non-2xx, malformed body, or missing subject identifier
        """
        try:
            response = await self.transport.get(
                self.get_userinfo_endpoint(),
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                params=self.userinfo_params(),
            )
        except TransportError as e:
            raise UserInfoError(
                f"{self.config.display_name} user info failed: {e.message}", provider=self.name, detail=e.detail
            ) from e

        if not response.ok:
            error_text = _provider_error_text(response)
            logger.error(f"{LOG_PREFIX} {self.name} userinfo fetch failed: {response.status_code} - {error_text}")
            raise UserInfoError(
                f"{self.config.display_name} user info failed: {error_text}",
                provider=self.name,
                detail=response.text,
            )

        try:
            raw = response.json()
        except ValueError:
            raw = None
        if not isinstance(raw, dict):
            raise UserInfoError(
                f"{self.config.display_name} user info returned a malformed response",
                provider=self.name,
                detail=response.text,
            )

        info = self.map_user_info(raw)
        if not info.provider_id:
            raise UserInfoError(
                f"{self.config.display_name} user info has no subject identifier", provider=self.name
            )

        logger.info(f"{LOG_PREFIX} Userinfo fetched for {self.name}")
        return info

    @abstractmethod
    def map_user_info(self, raw: Dict[str, Any]) -> CanonicalUserInfo:
        """Map the provider payload into ``CanonicalUserInfo``."""
