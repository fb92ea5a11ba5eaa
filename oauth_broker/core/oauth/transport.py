"""
Outbound HTTP transport used by provider adapters.

Adapters only see ``HttpTransport``; tests substitute an httpx client built
on ``httpx.MockTransport`` or a hand-written transport.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from oauth_broker.core.oauth.errors import TransportError

LOG_PREFIX = "[OAuthTransport]"


@dataclass
class TransportResponse:
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """
        Raises:
            ValueError: body is not JSON
        """
        return json.loads(self.text)


class HttpTransport(ABC):
    """Abstract HTTP capability: GET/POST with form or JSON body and a bounded timeout."""

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> TransportResponse:
        """
        Raises:
            TransportError: the request could not be completed
        """

    async def get(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> TransportResponse:
        return await self.request("GET", url, headers=headers, params=params)

    async def post_form(
        self,
        url: str,
        data: Dict[str, Any],
        *,
        headers: Optional[Dict[str, str]] = None,
    ) -> TransportResponse:
        return await self.request("POST", url, headers=headers, data=data)

    async def post_json(
        self,
        url: str,
        body: Any,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> TransportResponse:
        return await self.request("POST", url, headers=headers, params=params, json_body=body)


class HttpxTransport(HttpTransport):
    """httpx implementation. No retries; every call is bounded by ``timeout``."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> TransportResponse:
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=headers, params=params, data=data, json=json_body, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, headers=headers, params=params, data=data, json=json_body
                    )
        except httpx.HTTPError as e:
            logger.error(f"{LOG_PREFIX} {method} {url} failed: {type(e).__name__}: {e}")
            raise TransportError(f"Request to {url} failed: {e}", detail=str(e)) from e

        return TransportResponse(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )
