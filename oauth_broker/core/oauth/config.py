"""
OAuth provider config loader.

Loads provider configs from YAML with support for:
- env var expansion ${VAR_NAME}
- extra scopes appended to each provider's defaults
- provider extras (Google access_type/hosted_domain, Facebook graph_api_version, Microsoft tenant)
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from loguru import logger

LOG_PREFIX = "[OAuthConfig]"

CALLBACK_PATH = "/api/oauth/{provider}/callback"

# Keys consumed directly by OAuthProviderConfig; everything else lands in `extra`
_RESERVED_KEYS = {
    "enabled",
    "client_id",
    "client_secret",
    "redirect_uri",
    "scopes",
    "display_name",
}

DISPLAY_NAMES: Dict[str, str] = {
    "google": "Google",
    "facebook": "Facebook",
    "linkedin": "LinkedIn",
    "microsoft": "Microsoft",
}


@dataclass
class OAuthProviderConfig:
    """Single OAuth provider config."""

    name: str  # Provider key (e.g. "google")
    client_id: str
    client_secret: str
    redirect_uri: str
    display_name: str = ""
    scopes: List[str] = field(default_factory=list)  # Extra scopes on top of provider defaults
    extra: Dict[str, Any] = field(default_factory=dict)
    enabled_flag: bool = True

    @property
    def enabled(self) -> bool:
        """Enabled iff not switched off and both credentials are present."""
        return self.enabled_flag and bool(self.client_id) and bool(self.client_secret)


@dataclass
class OAuthSettings:
    """OAuth global settings."""

    login_url: str = "/login"
    settings_url: str = "/settings"
    default_redirect_url: str = "/dashboard"


class OAuthConfigLoader:
    """OAuth config loader."""

    def __init__(self, config_path: Optional[str] = None, public_base_url: Optional[str] = None):
        """
        Args:
            config_path: Config file path; defaults to config/oauth_providers.yaml at the project root
            public_base_url: Base URL for default callback URLs
        """
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = Path(__file__).parent.parent.parent.parent / "config" / "oauth_providers.yaml"

        if public_base_url is None:
            from oauth_broker.core.settings import settings

            public_base_url = settings.public_base_url
        self.public_base_url = public_base_url.rstrip("/")

        self._providers: Dict[str, OAuthProviderConfig] = {}
        self._settings: OAuthSettings = OAuthSettings()
        self._loaded: bool = False

    def load(self, force_reload: bool = False) -> None:
        """
        Load config file.

        Args:
            force_reload: Force reload
        """
        if self._loaded and not force_reload:
            return

        if not self.config_path.exists():
            logger.warning(f"{LOG_PREFIX} Config file not found: {self.config_path}")
            self.load_from_mapping({})
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"{LOG_PREFIX} Failed to load config: {e}")
            raw = None

        if not raw:
            logger.warning(f"{LOG_PREFIX} Config file is empty: {self.config_path}")
        self.load_from_mapping(raw or {})

    def load_from_mapping(self, raw: Mapping[str, Any]) -> None:
        """Load from an already parsed mapping (YAML document or test fixture)."""
        self._providers = {}

        settings_raw = self._expand_env_vars(dict(raw.get("settings") or {}))
        defaults = OAuthSettings()
        self._settings = OAuthSettings(
            login_url=settings_raw.get("login_url", defaults.login_url),
            settings_url=settings_raw.get("settings_url", defaults.settings_url),
            default_redirect_url=settings_raw.get("default_redirect_url", defaults.default_redirect_url),
        )

        for name, config in (raw.get("providers") or {}).items():
            provider = self._parse_provider(str(name).lower(), config or {})
            self._providers[provider.name] = provider
            if provider.enabled:
                logger.info(f"{LOG_PREFIX} Loaded provider: {provider.name}")
            else:
                logger.debug(f"{LOG_PREFIX} Provider '{provider.name}' is disabled or missing credentials")

        self._loaded = True
        logger.info(f"{LOG_PREFIX} Loaded {len(self.enabled_provider_names())} enabled OAuth providers")

    def _parse_provider(self, name: str, config: Dict[str, Any]) -> OAuthProviderConfig:
        """Parse a single provider config."""
        config = self._expand_env_vars(config)

        scopes = config.get("scopes") or []
        if isinstance(scopes, str):
            scopes = [s for s in re.split(r"[\s,]+", scopes) if s]

        enabled_raw = config.get("enabled", True)
        if isinstance(enabled_raw, str):
            enabled_raw = enabled_raw.strip().lower() not in {"0", "false", "no", "off", ""}

        return OAuthProviderConfig(
            name=name,
            client_id=str(config.get("client_id") or "").strip(),
            client_secret=str(config.get("client_secret") or "").strip(),
            redirect_uri=str(config.get("redirect_uri") or "").strip() or self.default_redirect_uri(name),
            display_name=config.get("display_name") or DISPLAY_NAMES.get(name, name.capitalize()),
            scopes=[str(s) for s in scopes],
            extra={k: v for k, v in config.items() if k not in _RESERVED_KEYS},
            enabled_flag=bool(enabled_raw),
        )

    def default_redirect_uri(self, provider: str) -> str:
        return f"{self.public_base_url}{CALLBACK_PATH.format(provider=provider)}"

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively replace ${VAR_NAME} with env var values."""
        if isinstance(obj, str):
            return re.sub(r"\$\{(\w+)\}", lambda m: os.environ.get(m.group(1), ""), obj)
        elif isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(i) for i in obj]
        return obj

    def get_provider(self, name: str) -> Optional[OAuthProviderConfig]:
        """Get provider config by name (enabled or not)."""
        self.load()
        return self._providers.get(name)

    def enabled_provider_names(self) -> List[str]:
        self.load()
        return [name for name, provider in self._providers.items() if provider.enabled]

    def list_providers(self) -> List[Dict[str, str]]:
        """
        List enabled providers (for frontend buttons).

        Returns:
            Provider info list without secrets
        """
        self.load()
        return [
            {"id": name, "display_name": self._providers[name].display_name}
            for name in self.enabled_provider_names()
        ]

    @property
    def settings(self) -> OAuthSettings:
        """Get global settings."""
        self.load()
        return self._settings

    def is_provider_enabled(self, name: str) -> bool:
        provider = self.get_provider(name)
        return provider is not None and provider.enabled


# Global config loader (lazy init)
_oauth_config: Optional[OAuthConfigLoader] = None


def get_oauth_config() -> OAuthConfigLoader:
    """Get global OAuth config loader."""
    global _oauth_config
    if _oauth_config is None:
        from oauth_broker.core.settings import settings

        _oauth_config = OAuthConfigLoader(settings.oauth_config_path, settings.public_base_url)
    return _oauth_config


def reload_oauth_config() -> None:
    """Reload OAuth config."""
    get_oauth_config().load(force_reload=True)
