"""
REST DiscoPanel protocol (/api/v1/...).
"""

from __future__ import annotations

from typing import Any

from ..errors import PanelConnectionError
from ..normalize import normalize_server
from ..types import ActionResult, AuthResult, NormalizedServer, PanelConnection
from .base import PanelAdapter

LOGIN = "/api/v1/auth/login"
SERVERS = "/api/v1/servers"


def server_path(server_id: str, action: str | None = None) -> str:
    path = f"{SERVERS}/{server_id}"
    return f"{path}/{action}" if action else path


class RestAdapter(PanelAdapter):
    kind = "rest"

    async def authenticate(self, base_url: str, username: str, password: str) -> AuthResult:
        data = await self.request(base_url, LOGIN, body={"username": username, "password": password})
        token, expires_at = self._token_from(data, ("expiresAt", "expires_at"))
        return AuthResult(token=token, expires_at=expires_at, protocol="rest")

    async def list_servers(self, connection: PanelConnection) -> list[NormalizedServer]:
        data: Any = await self.request(connection.url, SERVERS, method="GET", token=connection.token)
        if isinstance(data, dict):
            rows = data.get("servers") or []
        else:
            rows = data if isinstance(data, list) else []
        return [normalize_server(row) for row in rows if isinstance(row, dict)]

    async def get_server(self, connection: PanelConnection, server_id: str) -> NormalizedServer:
        data = await self.request(
            connection.url, server_path(server_id), method="GET", token=connection.token, server_id=server_id
        )
        if not isinstance(data, dict):
            raise PanelConnectionError(f"Unexpected server payload for {server_id}", connection.url)
        return normalize_server(data)

    async def _action(self, connection: PanelConnection, action: str, server_id: str) -> ActionResult:
        await self.request(connection.url, server_path(server_id, action), token=connection.token, server_id=server_id)
        return ActionResult(success=True)

    async def start_server(self, connection: PanelConnection, server_id: str) -> ActionResult:
        return await self._action(connection, "start", server_id)

    async def stop_server(self, connection: PanelConnection, server_id: str) -> ActionResult:
        return await self._action(connection, "stop", server_id)

    async def restart_server(self, connection: PanelConnection, server_id: str) -> ActionResult:
        return await self._action(connection, "restart", server_id)
