"""
Provider adapters.

- base.py: adapter interface, TokenSet, CanonicalUserInfo
- google.py / facebook.py / linkedin.py / microsoft.py: provider variants
"""

from oauth_broker.core.oauth.providers.base import BaseProviderAdapter, CanonicalUserInfo, TokenSet
from oauth_broker.core.oauth.providers.facebook import FacebookAdapter
from oauth_broker.core.oauth.providers.google import GoogleAdapter
from oauth_broker.core.oauth.providers.linkedin import LinkedInAdapter
from oauth_broker.core.oauth.providers.microsoft import MicrosoftAdapter

__all__ = [
    "BaseProviderAdapter",
    "CanonicalUserInfo",
    "TokenSet",
    "FacebookAdapter",
    "GoogleAdapter",
    "LinkedInAdapter",
    "MicrosoftAdapter",
]
