import pytest

from oauth_broker.core.oauth.config import OAuthConfigLoader


@pytest.fixture
def loader(tmp_path):
    return OAuthConfigLoader(str(tmp_path / "oauth_providers.yaml"), public_base_url="https://app.example.com/")


def test_yaml_file_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_GOOGLE_ID", "gid")
    monkeypatch.setenv("TEST_GOOGLE_SECRET", "gsecret")
    path = tmp_path / "oauth_providers.yaml"
    path.write_text(
        """
settings:
  login_url: /signin
providers:
  google:
    client_id: ${TEST_GOOGLE_ID}
    client_secret: ${TEST_GOOGLE_SECRET}
    scopes: "https://www.googleapis.com/auth/spreadsheets, https://www.googleapis.com/auth/drive.file"
    hosted_domain: example.com
  facebook:
    client_id: ${TEST_MISSING_FACEBOOK_ID}
    client_secret: secret
""",
        encoding="utf-8",
    )
    loader = OAuthConfigLoader(str(path), public_base_url="https://app.example.com")

    google = loader.get_provider("google")
    assert google.client_id == "gid"
    assert google.client_secret == "gsecret"
    assert google.scopes == [
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/drive.file",
    ]
    assert google.extra == {"hosted_domain": "example.com"}
    assert google.redirect_uri == "https://app.example.com/api/oauth/google/callback"
    assert google.display_name == "Google"

    # Unset variables expand to "" which leaves the provider disabled
    assert loader.get_provider("facebook").client_id == ""
    assert loader.enabled_provider_names() == ["google"]
    assert loader.settings.login_url == "/signin"
    assert loader.settings.settings_url == "/settings"


def test_missing_file_loads_nothing(loader):
    assert loader.enabled_provider_names() == []
    assert loader.list_providers() == []
    assert loader.get_provider("google") is None


def test_enabled_requires_both_credentials(loader):
    loader.load_from_mapping(
        {
            "providers": {
                "google": {"client_id": "id", "client_secret": "secret"},
                "linkedin": {"client_id": "id", "client_secret": ""},
                "microsoft": {"client_id": "", "client_secret": "secret"},
                "facebook": {"client_id": "id", "client_secret": "secret", "enabled": "false"},
            }
        }
    )

    assert loader.is_provider_enabled("google")
    assert not loader.is_provider_enabled("linkedin")
    assert not loader.is_provider_enabled("microsoft")
    assert not loader.is_provider_enabled("facebook")
    assert not loader.is_provider_enabled("github")
    assert loader.list_providers() == [{"id": "google", "display_name": "Google"}]


def test_redirect_uri_override_and_trailing_slash(loader):
    loader.load_from_mapping(
        {
            "providers": {
                "linkedin": {"client_id": "id", "client_secret": "s"},
                "microsoft": {
                    "client_id": "id",
                    "client_secret": "s",
                    "redirect_uri": "https://auth.example.com/cb",
                },
            }
        }
    )

    assert loader.get_provider("linkedin").redirect_uri == "https://app.example.com/api/oauth/linkedin/callback"
    assert loader.get_provider("microsoft").redirect_uri == "https://auth.example.com/cb"
    assert loader.get_provider("linkedin").display_name == "LinkedIn"
