from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..errors import (
    PanelAuthError,
    PanelConnectionError,
    PanelTimeoutError,
    ServerNotFoundError,
)
from ..types import ActionResult, AuthResult, NormalizedServer, PanelConnection, ProtocolKind

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0


class PanelAdapter(ABC):
    """
    One panel wire protocol.

    All calls go through request(), which owns the deadline and maps transport
    outcomes onto the panel error types.
    """

    kind: ClassVar[ProtocolKind]

    def __init__(self, client: httpx.AsyncClient, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self.client = client
        self.timeout = timeout

    async def request(
        self,
        base_url: str,
        endpoint: str,
        method: str = "POST",
        body: Any = None,
        token: str | None = None,
        server_id: str | None = None,
    ) -> Any:
        """
        Send one JSON request and return the decoded body ({} when empty).

        server_id marks the call as server-scoped: a 404 then means the server
        is gone and raises ServerNotFoundError.
        """
        url = f"{base_url}{endpoint}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await asyncio.wait_for(
                self.client.request(
                    method,
                    url,
                    headers=headers,
                    content=json.dumps(body) if body is not None else None,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise PanelTimeoutError("Request timed out", self.timeout) from e
        except httpx.HTTPError as e:
            raise PanelConnectionError(f"Failed to connect to panel: {e}", base_url) from e

        if response.status_code == 401:
            raise PanelAuthError("Authentication failed", 401)
        if response.status_code == 404 and server_id is not None:
            raise ServerNotFoundError(server_id)
        if not response.is_success:
            text = response.text[:200] or "Unknown error"
            raise PanelConnectionError(f"Request failed: {response.status_code} {text}", base_url)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PanelConnectionError(f"Invalid JSON from {endpoint}", base_url) from e

    @staticmethod
    def _token_from(data: Any, expiry_keys: tuple[str, ...]) -> tuple[str, int | None]:
        if not isinstance(data, dict) or not isinstance(data.get("token"), str) or not data["token"]:
            raise PanelAuthError("Login response did not include a token")
        expires_at = None
        for key in expiry_keys:
            value = data.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                expires_at = int(value)
                break
        return data["token"], expires_at

    @abstractmethod
    async def authenticate(self, base_url: str, username: str, password: str) -> AuthResult: ...

    @abstractmethod
    async def list_servers(self, connection: PanelConnection) -> list[NormalizedServer]: ...

    @abstractmethod
    async def get_server(self, connection: PanelConnection, server_id: str) -> NormalizedServer: ...

    @abstractmethod
    async def start_server(self, connection: PanelConnection, server_id: str) -> ActionResult: ...

    @abstractmethod
    async def stop_server(self, connection: PanelConnection, server_id: str) -> ActionResult: ...

    @abstractmethod
    async def restart_server(self, connection: PanelConnection, server_id: str) -> ActionResult: ...
