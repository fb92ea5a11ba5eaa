"""
Provider adapter registry.

Usage:
    from oauth_broker.core.oauth.factory import ProviderRegistry

    registry = ProviderRegistry(get_oauth_config(), HttpxTransport(timeout=10.0))
    adapter = registry.get("google")
    url = adapter.authorization_url(state, code_challenge)
"""

from typing import Dict, List, Optional, Type

from loguru import logger

from oauth_broker.core.oauth.config import OAuthConfigLoader
from oauth_broker.core.oauth.errors import ProviderNotConfigured
from oauth_broker.core.oauth.providers import (
    BaseProviderAdapter,
    FacebookAdapter,
    GoogleAdapter,
    LinkedInAdapter,
    MicrosoftAdapter,
)
from oauth_broker.core.oauth.transport import HttpTransport

LOG_PREFIX = "[OAuthFactory]"

# Adapter registry
# Register new providers here
_PROVIDER_ADAPTERS: Dict[str, Type[BaseProviderAdapter]] = {
    "google": GoogleAdapter,
    "facebook": FacebookAdapter,
    "linkedin": LinkedInAdapter,
    "microsoft": MicrosoftAdapter,
}


def register_provider_adapter(provider: str, adapter_class: Type[BaseProviderAdapter]) -> None:
    """
    Register a provider adapter.

    Args:
        provider: Provider name used in URLs and config
        adapter_class: Adapter class

    Example:
        register_provider_adapter("github", GitHubAdapter)
    """
    _PROVIDER_ADAPTERS[provider] = adapter_class
    logger.info(f"{LOG_PREFIX} Registered provider adapter: {provider}")


def list_supported_providers() -> List[str]:
    return list(_PROVIDER_ADAPTERS.keys())


class ProviderRegistry:
    """Builds adapters for configured providers and caches them per registry."""

    def __init__(self, config: OAuthConfigLoader, transport: HttpTransport):
        self.config = config
        self.transport = transport
        self._instances: Dict[str, BaseProviderAdapter] = {}

    def get(self, provider: str) -> BaseProviderAdapter:
        """
        Get the adapter for an enabled provider.

        Raises:
            ProviderNotConfigured: unknown provider, missing config, or missing credentials
        """
        if provider in self._instances:
            return self._instances[provider]

        adapter_class = _PROVIDER_ADAPTERS.get(provider)
        if adapter_class is None:
            raise ProviderNotConfigured(f"Unsupported OAuth provider: {provider}", provider=provider)

        provider_config = self.config.get_provider(provider)
        if provider_config is None or not provider_config.enabled:
            logger.warning(f"{LOG_PREFIX} Provider '{provider}' is not configured")
            raise ProviderNotConfigured(f"OAuth provider '{provider}' is not configured", provider=provider)

        adapter = adapter_class(provider_config, self.transport)
        self._instances[provider] = adapter
        logger.debug(f"{LOG_PREFIX} Created adapter for provider: {provider}")
        return adapter

    def find(self, provider: str) -> Optional[BaseProviderAdapter]:
        try:
            return self.get(provider)
        except ProviderNotConfigured:
            return None

    def is_enabled(self, provider: str) -> bool:
        return provider in _PROVIDER_ADAPTERS and self.config.is_provider_enabled(provider)

    def enabled_providers(self) -> List[str]:
        """Enabled provider names, in config order."""
        return [name for name in self.config.enabled_provider_names() if name in _PROVIDER_ADAPTERS]

    def list_providers(self) -> List[Dict[str, str]]:
        """Enabled providers without secrets (for login buttons)."""
        return [p for p in self.config.list_providers() if p["id"] in _PROVIDER_ADAPTERS]
