"""
Microsoft identity platform (v2.0) adapter, profile from Microsoft Graph.
"""

from typing import Any, Dict

from oauth_broker.core.oauth.providers.base import BaseProviderAdapter, CanonicalUserInfo

DEFAULT_TENANT = "common"


class MicrosoftAdapter(BaseProviderAdapter):
    name = "microsoft"
    userinfo_endpoint = "https://graph.microsoft.com/v1.0/me"
    default_scopes = ["openid", "email", "profile", "User.Read"]
    supports_refresh = True

    @property
    def tenant(self) -> str:
        return str(self.config.extra.get("tenant") or DEFAULT_TENANT)

    def get_authorize_endpoint(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant}/oauth2/v2.0/authorize"

    def get_token_endpoint(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant}/oauth2/v2.0/token"

    def extra_authorization_params(self) -> Dict[str, str]:
        return {"response_mode": "query"}

    def extra_refresh_params(self) -> Dict[str, str]:
        # The v2.0 endpoint expects the scopes again on refresh
        return {"scope": " ".join(self.resolve_scopes())}

    def map_user_info(self, raw: Dict[str, Any]) -> CanonicalUserInfo:
        return CanonicalUserInfo(
            provider_id=str(raw.get("id") or ""),
            email=raw.get("mail") or raw.get("userPrincipalName"),
            given_name=raw.get("givenName"),
            family_name=raw.get("surname"),
            display_name=raw.get("displayName"),
            raw=raw,
        )
