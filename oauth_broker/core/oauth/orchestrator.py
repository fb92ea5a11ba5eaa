"""
Authorization flow orchestrator.

Drives the two legs of the authorization code flow:

1. ``begin_redirect``: generate PKCE + CSRF state, persist the pending flow
   keyed by (session id, provider), return the provider authorization URL.
2. ``handle_callback``: take the pending flow (single use), validate state,
   exchange the code, fetch the profile and hand it to the reconciler.

Every failure inside ``handle_callback`` becomes an ``Outcome`` with
``success=False``; no ``OAuthError`` leaves this module from the callback leg.
"""

import hmac
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from loguru import logger

from oauth_broker.core.oauth.config import DISPLAY_NAMES, OAuthSettings
from oauth_broker.core.oauth.errors import (
    CsrfStateMismatch,
    MissingAuthorizationCode,
    NotAuthenticated,
    OAuthError,
    ProviderDenied,
)
from oauth_broker.core.oauth.factory import ProviderRegistry
from oauth_broker.core.oauth.flow_state import FlowStateStore, PendingFlowState
from oauth_broker.core.oauth.pkce import generate_pkce, generate_state
from oauth_broker.core.oauth.providers import CanonicalUserInfo, TokenSet

LOG_PREFIX = "[OAuthFlow]"

INTERNAL_ERROR = "internal_error"


class FlowAction(str, Enum):
    LOGIN = "login"
    LINK = "link"


class FlowStage(str, Enum):
    IDLE = "idle"
    AWAITING_PROVIDER_REDIRECT = "awaiting_provider_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    COMPLETED = "completed"


@dataclass
class RedirectTarget:
    url: str
    provider: str
    flow_state: PendingFlowState
    stage: FlowStage = FlowStage.AWAITING_CALLBACK


@dataclass
class Outcome:
    """Terminal result of a flow. Never persisted."""

    success: bool
    provider: str
    action: FlowAction
    message: str
    reason: Optional[str] = None
    detail: Optional[str] = None
    user: Optional[Dict[str, Any]] = None  # user_name, email, first_name, last_name
    user_id: Optional[str] = None
    is_new_user: Optional[bool] = None
    redirect_target: Optional[str] = None
    popup: bool = False
    stage: FlowStage = field(default=FlowStage.COMPLETED)


class ConnectionReconcilerProtocol(Protocol):
    async def find_or_create_user(self, provider: str, user_info: CanonicalUserInfo, tokens: TokenSet) -> Any:
        ...

    async def link_provider(self, user_id: str, provider: str, user_info: CanonicalUserInfo, tokens: TokenSet) -> Any:
        ...


def user_summary(user: Any) -> Dict[str, Any]:
    return {
        "user_name": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def _short(value: Optional[str]) -> str:
    """Truncate a state value for logs."""
    if not value:
        return "<none>"
    return f"{value[:8]}..."


class OAuthFlowOrchestrator:
    """State machine for login and link flows."""

    def __init__(
        self,
        registry: ProviderRegistry,
        state_store: FlowStateStore,
        reconciler: ConnectionReconcilerProtocol,
        oauth_settings: Optional[OAuthSettings] = None,
        state_ttl_seconds: int = 600,
    ):
        self.registry = registry
        self.state_store = state_store
        self.reconciler = reconciler
        self.oauth_settings = oauth_settings or OAuthSettings()
        self.state_ttl_seconds = state_ttl_seconds

    def display_name(self, provider: str) -> str:
        adapter = self.registry.find(provider)
        if adapter is not None and adapter.config.display_name:
            return adapter.config.display_name
        return DISPLAY_NAMES.get(provider, provider.capitalize())

    # ==================== Leg 1: redirect ====================

    async def begin_redirect(
        self,
        session_id: str,
        provider: str,
        mode: FlowAction = FlowAction.LOGIN,
        current_user_id: Optional[str] = None,
        popup: bool = False,
        redirect_after_login: Optional[str] = None,
    ) -> RedirectTarget:
        """
        Start a flow and return the provider authorization URL.

        Raises:
            ProviderNotConfigured: provider unknown or disabled
            NotAuthenticated: link mode without a current user
            EntropyUnavailable: secure random source failed
        """
        adapter = self.registry.get(provider)

        if mode == FlowAction.LINK and not current_user_id:
            raise NotAuthenticated("You must be logged in to link an OAuth provider.", provider=provider)

        pkce = generate_pkce()
        state = generate_state()
        pending = PendingFlowState(
            csrf_state=state,
            pkce_verifier=pkce.verifier,
            link_mode=mode == FlowAction.LINK,
            user_id=current_user_id if mode == FlowAction.LINK else None,
            popup=popup,
            redirect_after_login=redirect_after_login,
        )
        await self.state_store.save(session_id, provider, pending, self.state_ttl_seconds)

        url = adapter.authorization_url(state=state, code_challenge=pkce.challenge)
        logger.info(f"{LOG_PREFIX} Redirecting to {provider} ({mode.value}), state={_short(state)}")
        return RedirectTarget(url=url, provider=provider, flow_state=pending)

    def begin_failure_outcome(
        self,
        provider: str,
        mode: FlowAction,
        error: OAuthError,
        popup: bool = False,
    ) -> Outcome:
        """Outcome for a redirect that could not be started."""
        if error.reason == "provider_not_configured":
            message = f"OAuth provider not available: {error.message}"
        else:
            message = error.message
        return self._failure(provider, mode, error.reason, message, popup=popup, detail=error.detail)

    # ==================== Leg 2: callback ====================

    async def handle_callback(
        self,
        session_id: str,
        provider: str,
        query_state: Optional[str],
        code: Optional[str] = None,
        provider_error: Optional[str] = None,
        current_user_id: Optional[str] = None,
    ) -> Outcome:
        mode = FlowAction.LOGIN
        popup = False
        try:
            # Single use: the pending flow is gone whatever happens next
            pending = await self.state_store.take(session_id, provider)
            if pending is not None:
                mode = FlowAction.LINK if pending.link_mode else FlowAction.LOGIN
                popup = pending.popup
            return await self._complete(pending, provider, mode, query_state, code, provider_error, current_user_id)
        except OAuthError as e:
            logger.warning(f"{LOG_PREFIX} {provider} {mode.value} failed: {e.reason} - {e.message}")
            return self._failure(provider, mode, e.reason, self._failure_message(provider, e), popup=popup, detail=e.detail)
        except Exception as e:
            logger.exception(f"{LOG_PREFIX} Unexpected error in {provider} callback: {type(e).__name__}")
            return self._failure(
                provider,
                mode,
                INTERNAL_ERROR,
                "OAuth authentication error: An unexpected error occurred.",
                popup=popup,
            )

    async def _complete(
        self,
        pending: Optional[PendingFlowState],
        provider: str,
        mode: FlowAction,
        query_state: Optional[str],
        code: Optional[str],
        provider_error: Optional[str],
        current_user_id: Optional[str],
    ) -> Outcome:
        if provider_error:
            raise ProviderDenied(f"OAuth authentication failed: {provider_error}", provider=provider)

        adapter = self.registry.get(provider)

        if pending is None:
            logger.warning(f"{LOG_PREFIX} No pending {provider} flow for callback, state={_short(query_state)}")
            raise CsrfStateMismatch("Invalid OAuth state. Please try again.", provider=provider)

        if not adapter.manages_own_state:
            if not query_state or not hmac.compare_digest(query_state, pending.csrf_state):
                logger.warning(f"{LOG_PREFIX} State mismatch for {provider}, got {_short(query_state)}")
                raise CsrfStateMismatch("Invalid OAuth state. Please try again.", provider=provider)

        if not code:
            raise MissingAuthorizationCode("No authorization code received.", provider=provider)

        # Code exchange must finish before the profile can be fetched
        tokens = await adapter.exchange_code(code, verifier=pending.pkce_verifier)
        user_info = await adapter.fetch_user_info(tokens.access_token)

        display_name = self.display_name(provider)

        if pending.link_mode:
            if not current_user_id or (pending.user_id and current_user_id != pending.user_id):
                raise NotAuthenticated("You must be logged in to link an OAuth provider.", provider=provider)
            await self.reconciler.link_provider(current_user_id, provider, user_info, tokens)
            logger.info(f"{LOG_PREFIX} Linked {provider} to user {current_user_id}")
            return Outcome(
                success=True,
                provider=provider,
                action=FlowAction.LINK,
                message=f"{display_name} account linked successfully.",
                user_id=current_user_id,
                redirect_target=self.oauth_settings.settings_url,
                popup=pending.popup,
            )

        result = await self.reconciler.find_or_create_user(provider, user_info, tokens)
        if result.is_new_user:
            message = "Welcome! Your account has been created."
        else:
            message = f"Successfully logged in with {display_name}."
        logger.info(f"{LOG_PREFIX} {provider} login for user {result.user.id} (new={result.is_new_user})")
        return Outcome(
            success=True,
            provider=provider,
            action=FlowAction.LOGIN,
            message=message,
            user=user_summary(result.user),
            user_id=str(result.user.id),
            is_new_user=result.is_new_user,
            redirect_target=pending.redirect_after_login or self.oauth_settings.default_redirect_url,
            popup=pending.popup,
        )

    # ==================== Failure outcomes ====================

    def _failure_message(self, provider: str, error: OAuthError) -> str:
        display_name = self.display_name(provider)
        if error.reason == "provider_error":
            return f"OAuth authentication error: {error.message}"
        if error.reason == "provider_not_configured":
            return f"OAuth provider not available: {error.message}"
        if error.reason == "missing_email":
            return f"Your {display_name} account did not share an email address. Please grant email access and try again."
        if error.reason == "identity_already_linked":
            return f"This {display_name} account is already linked to another user."
        return error.message

    def _failure(
        self,
        provider: str,
        mode: FlowAction,
        reason: str,
        message: str,
        popup: bool = False,
        detail: Optional[str] = None,
    ) -> Outcome:
        if mode == FlowAction.LINK and reason != NotAuthenticated.reason:
            target = self.oauth_settings.settings_url
        else:
            target = self.oauth_settings.login_url
        return Outcome(
            success=False,
            provider=provider,
            action=mode,
            message=message,
            reason=reason,
            detail=detail,
            redirect_target=target,
            popup=popup,
        )
