"""
Facebook Graph API adapter.
"""

from typing import Any, Dict, Optional

from oauth_broker.core.oauth.providers.base import BaseProviderAdapter, CanonicalUserInfo

DEFAULT_GRAPH_API_VERSION = "v18.0"
PROFILE_FIELDS = "id,name,first_name,last_name,email,picture.type(large)"


class FacebookAdapter(BaseProviderAdapter):
    name = "facebook"
    default_scopes = ["email", "public_profile"]
    scope_separator = ","
    manages_own_state = True

    @property
    def graph_api_version(self) -> str:
        return str(self.config.extra.get("graph_api_version") or DEFAULT_GRAPH_API_VERSION)

    def get_authorize_endpoint(self) -> str:
        return f"https://www.facebook.com/{self.graph_api_version}/dialog/oauth"

    def get_token_endpoint(self) -> str:
        return f"https://graph.facebook.com/{self.graph_api_version}/oauth/access_token"

    def get_userinfo_endpoint(self) -> str:
        return f"https://graph.facebook.com/{self.graph_api_version}/me"

    def userinfo_params(self) -> Optional[Dict[str, str]]:
        return {"fields": PROFILE_FIELDS}

    def map_user_info(self, raw: Dict[str, Any]) -> CanonicalUserInfo:
        picture = raw.get("picture")
        picture_url = None
        if isinstance(picture, dict):
            picture_url = (picture.get("data") or {}).get("url")
        return CanonicalUserInfo(
            provider_id=str(raw.get("id") or ""),
            email=raw.get("email"),
            given_name=raw.get("first_name"),
            family_name=raw.get("last_name"),
            display_name=raw.get("name"),
            picture_url=picture_url,
            raw=raw,
        )
