"""
Pending OAuth flow state.

A ``PendingFlowState`` is written when a redirect is issued and taken
(read + delete in one step) when the callback arrives, so a callback can
never be completed twice. Entries are keyed by (session id, provider);
concurrent flows for different providers never share a key.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from oauth_broker.core.redis import RedisClient

LOG_PREFIX = "[FlowState]"

KEY_TEMPLATE = "oauth_flow:{session_id}:{provider}"


@dataclass
class PendingFlowState:
    csrf_state: str
    pkce_verifier: str
    link_mode: bool = False
    user_id: Optional[str] = None  # Initiating user when linking
    popup: bool = False
    redirect_after_login: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, payload: str) -> "PendingFlowState":
        data: Dict[str, Any] = json.loads(payload)
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def flow_key(session_id: str, provider: str) -> str:
    return KEY_TEMPLATE.format(session_id=session_id, provider=provider)


class FlowStateStore(ABC):
    """Session store for pending flows."""

    @abstractmethod
    async def save(self, session_id: str, provider: str, state: PendingFlowState, ttl_seconds: int) -> None:
        """Store (or replace) the pending flow for this session and provider."""

    @abstractmethod
    async def take(self, session_id: str, provider: str) -> Optional[PendingFlowState]:
        """Atomically read and delete. Returns None when absent or expired."""


class RedisFlowStateStore(FlowStateStore):
    """Redis-backed store. ``take`` runs GET+DEL inside MULTI/EXEC."""

    async def save(self, session_id: str, provider: str, state: PendingFlowState, ttl_seconds: int) -> None:
        stored = await RedisClient.set(flow_key(session_id, provider), state.to_json(), expire=ttl_seconds)
        if not stored:
            raise RuntimeError("Redis is not initialized")

    async def take(self, session_id: str, provider: str) -> Optional[PendingFlowState]:
        payload = await RedisClient.take(flow_key(session_id, provider))
        if payload is None:
            return None
        try:
            return PendingFlowState.from_json(payload)
        except (ValueError, TypeError) as e:
            logger.warning(f"{LOG_PREFIX} Discarding unreadable flow state for {provider}: {e}")
            return None


class InMemoryFlowStateStore(FlowStateStore):
    """Process-local store for development and tests. Not shared across workers."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[float, PendingFlowState]] = {}
        self._lock = asyncio.Lock()

    async def save(self, session_id: str, provider: str, state: PendingFlowState, ttl_seconds: int) -> None:
        async with self._lock:
            self._purge_expired()
            self._entries[flow_key(session_id, provider)] = (self._clock() + ttl_seconds, state)

    async def take(self, session_id: str, provider: str) -> Optional[PendingFlowState]:
        async with self._lock:
            entry = self._entries.pop(flow_key(session_id, provider), None)
        if entry is None:
            return None
        expires_at, state = entry
        if self._clock() >= expires_at:
            logger.info(f"{LOG_PREFIX} Pending {provider} flow expired")
            return None
        return state

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
