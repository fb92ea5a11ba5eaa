"""
OAuth API endpoints.

- GET  /oauth/providers - list enabled providers
- GET  /oauth/connections - current user's connections (no tokens)
- GET  /oauth/link/{provider} - start a link flow (authenticated)
- POST /oauth/disconnect/{provider} - remove a connection (authenticated)
- GET  /oauth/{provider} - start a login flow
- GET  /oauth/{provider}/callback - complete a flow (redirect or popup page)
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from oauth_broker.common.dependencies import (
    FlowSession,
    get_current_user,
    get_current_user_optional,
    get_flow_session,
    get_orchestrator,
    get_provider_registry,
    get_reconciler,
)
from oauth_broker.common.exceptions import NotFoundException
from oauth_broker.core.database import get_db
from oauth_broker.core.oauth.errors import OAuthError
from oauth_broker.core.oauth.factory import ProviderRegistry
from oauth_broker.core.oauth.orchestrator import FlowAction, OAuthFlowOrchestrator, Outcome
from oauth_broker.core.oauth.popup import render_popup_result
from oauth_broker.core.security import create_access_token
from oauth_broker.core.settings import settings
from oauth_broker.models.user import User
from oauth_broker.services.connection_reconciler import ConnectionReconciler

LOG_PREFIX = "[OAuthAPI]"
router = APIRouter(prefix="/oauth", tags=["OAuth"])


# ==================== Response Models ====================


class OAuthProviderInfo(BaseModel):
    """Provider info (no secrets)."""

    id: str
    display_name: str


class OAuthProvidersResponse(BaseModel):
    providers: List[OAuthProviderInfo]


class OAuthConnectionInfo(BaseModel):
    id: str
    provider: str
    provider_user_id: str
    expires_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OAuthConnectionsResponse(BaseModel):
    connections: Dict[str, OAuthConnectionInfo]


class DisconnectResponse(BaseModel):
    success: bool
    message: str
    provider: str


# ==================== API Endpoints ====================


@router.get("/providers", response_model=OAuthProvidersResponse)
async def list_oauth_providers(
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> OAuthProvidersResponse:
    """Enabled providers, for rendering login buttons."""
    return OAuthProvidersResponse(providers=[OAuthProviderInfo(**p) for p in registry.list_providers()])


@router.get("/connections", response_model=OAuthConnectionsResponse)
async def list_connections(
    current_user: User = Depends(get_current_user),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
) -> OAuthConnectionsResponse:
    """Current user's connections keyed by provider. Tokens are never included."""
    connections = await reconciler.list_connections(current_user.id)
    return OAuthConnectionsResponse(
        connections={c.provider: OAuthConnectionInfo(**c.to_public_dict()) for c in connections}
    )


@router.get("/link/{provider}")
async def oauth_link(
    provider: str,
    popup: bool = Query(False, description="Deliver the result through the popup channel"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    session: FlowSession = Depends(get_flow_session),
    orchestrator: OAuthFlowOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Start a link flow for the signed-in user."""
    return await _begin(
        orchestrator,
        session,
        provider,
        FlowAction.LINK,
        popup=popup,
        current_user_id=current_user.id if current_user else None,
    )


@router.post("/disconnect/{provider}", response_model=DisconnectResponse)
async def oauth_disconnect(
    provider: str,
    current_user: User = Depends(get_current_user),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
    db: AsyncSession = Depends(get_db),
) -> DisconnectResponse:
    """Remove the caller's connection for a provider."""
    removed = await reconciler.disconnect_provider(current_user.id, provider)
    if not removed:
        raise NotFoundException("OAuth connection not found.", data={"provider": provider})

    await db.commit()
    return DisconnectResponse(success=True, message="OAuth provider disconnected successfully.", provider=provider)


@router.get("/{provider}")
async def oauth_authorize(
    provider: str,
    popup: bool = Query(False, description="Deliver the result through the popup channel"),
    redirect: Optional[str] = Query(None, description="Path to open after a successful login"),
    session: FlowSession = Depends(get_flow_session),
    orchestrator: OAuthFlowOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Start a login flow: 302 to the provider's authorization page."""
    return await _begin(
        orchestrator,
        session,
        provider,
        FlowAction.LOGIN,
        popup=popup,
        redirect_after_login=_safe_local_path(redirect),
    )


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="CSRF state"),
    error: Optional[str] = Query(None, description="Provider error code"),
    error_description: Optional[str] = Query(None, description="Provider error description"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    session: FlowSession = Depends(get_flow_session),
    orchestrator: OAuthFlowOrchestrator = Depends(get_orchestrator),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Complete a flow and deliver the outcome."""
    provider_error = error_description or error
    outcome = await orchestrator.handle_callback(
        session_id=session.id,
        provider=provider,
        query_state=state,
        code=code,
        provider_error=provider_error,
        current_user_id=current_user.id if current_user else None,
    )

    if outcome.success:
        await db.commit()
    else:
        await db.rollback()
        logger.info(f"{LOG_PREFIX} {provider} callback failed: {outcome.reason}")

    return _deliver(outcome)


# ==================== Helpers ====================


async def _begin(
    orchestrator: OAuthFlowOrchestrator,
    session: FlowSession,
    provider: str,
    mode: FlowAction,
    popup: bool = False,
    current_user_id: Optional[str] = None,
    redirect_after_login: Optional[str] = None,
) -> Response:
    try:
        target = await orchestrator.begin_redirect(
            session_id=session.id,
            provider=provider,
            mode=mode,
            current_user_id=current_user_id,
            popup=popup,
            redirect_after_login=redirect_after_login,
        )
    except OAuthError as e:
        logger.warning(f"{LOG_PREFIX} Could not start {provider} {mode.value} flow: {e.reason}")
        return _deliver(orchestrator.begin_failure_outcome(provider, mode, e, popup=popup))

    response = RedirectResponse(url=target.url, status_code=302)
    if session.is_new:
        _set_session_cookie(response, session.id)
    return response


def _safe_local_path(path: Optional[str]) -> Optional[str]:
    """Only same-site absolute paths are accepted as post-login targets."""
    if path and path.startswith("/") and not path.startswith("//") and "\\" not in path:
        return path
    return None


def _frontend_url(path: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}{path}"


def _cookie_kwargs() -> Dict[str, Any]:
    cookie_kwargs: Dict[str, Any] = {
        "httponly": True,
        "samesite": settings.cookie_samesite,
        "secure": settings.cookie_secure_effective,
        "path": "/",
    }
    if settings.cookie_domain:
        cookie_kwargs["domain"] = settings.cookie_domain
    return cookie_kwargs


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.oauth_state_ttl_seconds * 6,
        **_cookie_kwargs(),
    )


def _set_auth_cookie(response: Response, user_id: str) -> None:
    access_token = create_access_token(user_id)
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    response.set_cookie(key=settings.cookie_name, value=access_token, expires=expires, **_cookie_kwargs())


def _redirect_with_error(path: str, error: str, description: str) -> RedirectResponse:
    separator = "&" if "?" in path else "?"
    url = f"{_frontend_url(path)}{separator}{urlencode({'error': error, 'error_description': description})}"
    return RedirectResponse(url=url, status_code=302)


def _deliver(outcome: Outcome) -> Response:
    """Popup page or redirect; a successful login also gets the session cookie."""
    if outcome.popup:
        redirect_url = _frontend_url(outcome.redirect_target or "/")
        response: Response = HTMLResponse(render_popup_result(outcome, redirect_url))
    elif outcome.success:
        response = RedirectResponse(url=_frontend_url(outcome.redirect_target or "/"), status_code=302)
    else:
        return _redirect_with_error(outcome.redirect_target or "/", outcome.reason or "oauth_error", outcome.message)

    if outcome.success and outcome.action == FlowAction.LOGIN and outcome.user_id:
        _set_auth_cookie(response, outcome.user_id)
    return response
