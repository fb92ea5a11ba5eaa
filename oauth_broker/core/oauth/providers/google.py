"""
Google OpenID Connect adapter.
"""

from typing import Any, Dict

from oauth_broker.core.oauth.providers.base import BaseProviderAdapter, CanonicalUserInfo


class GoogleAdapter(BaseProviderAdapter):
    """Google issues refresh tokens when access_type=offline and consent is prompted."""

    name = "google"
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://openidconnect.googleapis.com/v1/userinfo"
    default_scopes = ["openid", "email", "profile"]
    supports_refresh = True

    def extra_authorization_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        access_type = str(self.config.extra.get("access_type") or "offline")
        params["access_type"] = access_type
        if access_type == "offline":
            params["prompt"] = "consent"
        hosted_domain = self.config.extra.get("hosted_domain")
        if hosted_domain:
            params["hd"] = str(hosted_domain)
        return params

    def map_user_info(self, raw: Dict[str, Any]) -> CanonicalUserInfo:
        return CanonicalUserInfo(
            provider_id=str(raw.get("sub") or raw.get("id") or ""),
            email=raw.get("email"),
            given_name=raw.get("given_name"),
            family_name=raw.get("family_name"),
            display_name=raw.get("name"),
            picture_url=raw.get("picture"),
            raw=raw,
        )
