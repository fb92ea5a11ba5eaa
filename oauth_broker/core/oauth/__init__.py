"""
OAuth broker core.

Module layout:
- config.py: provider config loader (OAuthProviderConfig, OAuthConfigLoader)
- errors.py: error taxonomy with stable reason codes
- pkce.py: PKCE verifier/challenge and CSRF state generation
- transport.py: abstract HTTP transport + httpx implementation
- providers/: adapters for google, facebook, linkedin, microsoft
- factory.py: provider adapter registry
- flow_state.py: pending flow storage (Redis or in-process)
- orchestrator.py: redirect/callback state machine
- popup.py: popup result channel
"""

from oauth_broker.core.oauth.config import (
    OAuthConfigLoader,
    OAuthProviderConfig,
    OAuthSettings,
    get_oauth_config,
    reload_oauth_config,
)
from oauth_broker.core.oauth.factory import ProviderRegistry, register_provider_adapter

__all__ = [
    "OAuthConfigLoader",
    "OAuthProviderConfig",
    "OAuthSettings",
    "get_oauth_config",
    "reload_oauth_config",
    "ProviderRegistry",
    "register_provider_adapter",
]
