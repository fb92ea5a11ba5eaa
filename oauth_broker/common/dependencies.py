"""
Shared FastAPI dependencies
"""
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from oauth_broker.common.exceptions import UnauthorizedException
from oauth_broker.core.database import get_db
from oauth_broker.core.oauth.config import get_oauth_config
from oauth_broker.core.oauth.factory import ProviderRegistry
from oauth_broker.core.oauth.flow_state import FlowStateStore, InMemoryFlowStateStore, RedisFlowStateStore
from oauth_broker.core.oauth.orchestrator import OAuthFlowOrchestrator
from oauth_broker.core.oauth.transport import HttpTransport, HttpxTransport
from oauth_broker.core.redis import RedisClient
from oauth_broker.core.security import decode_token, generate_token
from oauth_broker.core.settings import settings
from oauth_broker.models.user import User
from oauth_broker.repositories.user import UserRepository
from oauth_broker.services.connection_reconciler import ConnectionReconciler
from oauth_broker.services.google_sheets_service import GoogleSheetsService
from oauth_broker.services.token_lifecycle import TokenLifecycleManager

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="/api/oauth/providers", auto_error=False)


# ==================== Current user ====================


async def get_current_user_optional(
    request: Request,
    token: Annotated[Optional[str], Depends(oauth2_scheme_optional)],
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Current user from the session cookie or a Bearer header; None when anonymous."""
    token = token or request.cookies.get(settings.cookie_name)
    if not token:
        return None

    payload = decode_token(token)
    if payload is None:
        return None

    user = await UserRepository(db).get(payload.sub)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Current user (login required)."""
    if user is None:
        raise UnauthorizedException("Authentication required")
    return user


# ==================== Flow session ====================


@dataclass
class FlowSession:
    """Browser session that scopes pending OAuth flows."""

    id: str
    is_new: bool = False


def get_flow_session(request: Request) -> FlowSession:
    session_id = request.cookies.get(settings.session_cookie_name)
    if session_id:
        return FlowSession(id=session_id)
    return FlowSession(id=generate_token(32), is_new=True)


# ==================== OAuth collaborators ====================

_transport: Optional[HttpTransport] = None
_registry: Optional[ProviderRegistry] = None
_memory_store: Optional[InMemoryFlowStateStore] = None


def get_transport() -> HttpTransport:
    global _transport
    if _transport is None:
        _transport = HttpxTransport(timeout=settings.oauth_http_timeout)
    return _transport


def get_provider_registry(transport: HttpTransport = Depends(get_transport)) -> ProviderRegistry:
    global _registry
    if _registry is None or _registry.transport is not transport:
        _registry = ProviderRegistry(get_oauth_config(), transport)
    return _registry


def get_state_store() -> FlowStateStore:
    """Redis when connected, otherwise the process-local store."""
    global _memory_store
    if RedisClient.is_available():
        return RedisFlowStateStore()
    if _memory_store is None:
        _memory_store = InMemoryFlowStateStore()
    return _memory_store


def get_reconciler(db: AsyncSession = Depends(get_db)) -> ConnectionReconciler:
    return ConnectionReconciler(db)


def get_orchestrator(
    registry: ProviderRegistry = Depends(get_provider_registry),
    state_store: FlowStateStore = Depends(get_state_store),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
) -> OAuthFlowOrchestrator:
    return OAuthFlowOrchestrator(
        registry=registry,
        state_store=state_store,
        reconciler=reconciler,
        oauth_settings=registry.config.settings,
        state_ttl_seconds=settings.oauth_state_ttl_seconds,
    )


def get_token_manager(
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(db, registry)


def get_sheets_service(
    tokens: TokenLifecycleManager = Depends(get_token_manager),
    transport: HttpTransport = Depends(get_transport),
) -> GoogleSheetsService:
    return GoogleSheetsService(tokens, transport)
