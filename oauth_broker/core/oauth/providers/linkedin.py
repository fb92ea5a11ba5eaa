"""
LinkedIn (Sign In with LinkedIn using OpenID Connect) adapter.
"""

from typing import Any, Dict

from oauth_broker.core.oauth.providers.base import BaseProviderAdapter, CanonicalUserInfo


class LinkedInAdapter(BaseProviderAdapter):
    name = "linkedin"
    authorize_endpoint = "https://www.linkedin.com/oauth/v2/authorization"
    token_endpoint = "https://www.linkedin.com/oauth/v2/accessToken"
    userinfo_endpoint = "https://api.linkedin.com/v2/userinfo"
    default_scopes = ["openid", "email", "profile"]

    def map_user_info(self, raw: Dict[str, Any]) -> CanonicalUserInfo:
        return CanonicalUserInfo(
            provider_id=str(raw.get("sub") or ""),
            email=raw.get("email"),
            given_name=raw.get("given_name"),
            family_name=raw.get("family_name"),
            display_name=raw.get("name"),
            picture_url=raw.get("picture"),
            raw=raw,
        )
