"""
Shared fixtures.

Settings are read at import time, so the environment is prepared before any
oauth_broker module is imported.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-session-tokens")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CREDENTIAL_ENCRYPTION_KEY", "test-token-encryption-passphrase")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

from typing import Any, Callable, Dict, List  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from oauth_broker.core.database import Base  # noqa: E402
from oauth_broker.core.oauth.config import OAuthConfigLoader  # noqa: E402
from oauth_broker.core.oauth.factory import ProviderRegistry  # noqa: E402
from oauth_broker.core.oauth.transport import HttpxTransport  # noqa: E402
from oauth_broker.models import OAuthConnection, User  # noqa: E402,F401

PROVIDERS_CONFIG: Dict[str, Any] = {
    "settings": {
        "login_url": "/login",
        "settings_url": "/settings",
        "default_redirect_url": "/dashboard",
    },
    "providers": {
        "google": {
            "client_id": "google-client-id",
            "client_secret": "google-client-secret",
            "scopes": ["https://www.googleapis.com/auth/spreadsheets"],
        },
        "facebook": {
            "client_id": "facebook-client-id",
            "client_secret": "facebook-client-secret",
        },
        "linkedin": {
            "client_id": "linkedin-client-id",
            "client_secret": "linkedin-client-secret",
        },
        "microsoft": {
            "client_id": "microsoft-client-id",
            "client_secret": "microsoft-client-secret",
            "tenant": "contoso",
        },
    },
}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with working SAVEPOINTs."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    # pysqlite/aiosqlite transaction handling breaks SAVEPOINT; take control of BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# OAuth configuration and provider HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def oauth_config(tmp_path) -> OAuthConfigLoader:
    loader = OAuthConfigLoader(str(tmp_path / "missing.yaml"), public_base_url="http://testserver")
    loader.load_from_mapping(PROVIDERS_CONFIG)
    return loader


def _bare_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


class ProviderHttpRecorder:
    """
    httpx.MockTransport handler with per-URL canned responses.

    Routes are matched on "METHOD url-without-query"; unmatched requests get a 404.
    """

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, status_code: int = 200, json: Any = None, text: str = None):
        def _respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status_code, text=text)
            return httpx.Response(status_code, json=json)

        self.routes[f"{method} {url}"] = _respond

    def add_handler(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]):
        self.routes[f"{method} {url}"] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {_bare_url(request)}"
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "not_found", "error_description": key})
        return handler(request)

    def find(self, method: str, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and _bare_url(r) == url]


@pytest.fixture
def provider_http() -> ProviderHttpRecorder:
    return ProviderHttpRecorder()


@pytest_asyncio.fixture
async def transport(provider_http):
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider_http))
    yield HttpxTransport(timeout=5.0, client=client)
    await client.aclose()


@pytest.fixture
def registry(oauth_config, transport) -> ProviderRegistry:
    return ProviderRegistry(oauth_config, transport)
