"""
Connect (RPC-style) DiscoPanel protocol.

Every call is a POST to /<package>.<Service>/<Method> with a JSON body.
There is no single-server endpoint, so get_server filters the listing.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import ServerNotFoundError
from ..normalize import CONNECT_STATUS_PREFIX, normalize_server
from ..types import ActionResult, AuthResult, NormalizedServer, PanelConnection
from .base import PanelAdapter

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "login": "/discopanel.v1.AuthService/Login",
    "list_servers": "/discopanel.v1.ServerService/ListServers",
    "start": "/discopanel.v1.ServerService/StartServer",
    "stop": "/discopanel.v1.ServerService/StopServer",
    "restart": "/discopanel.v1.ServerService/RestartServer",
}


def _server_rows(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        rows = data
    elif isinstance(data, dict) and isinstance(data.get("servers"), list):
        rows = data["servers"]
    elif isinstance(data, dict) and isinstance(data.get("items"), list):
        rows = data["items"]
    else:
        rows = []
    return [r for r in rows if isinstance(r, dict)]


class ConnectAdapter(PanelAdapter):
    kind = "connect"

    async def authenticate(self, base_url: str, username: str, password: str) -> AuthResult:
        data = await self.request(base_url, ENDPOINTS["login"], body={"username": username, "password": password})
        token, expires_at = self._token_from(data, ("expires_at", "expiresAt"))
        return AuthResult(token=token, expires_at=expires_at, protocol="connect")

    async def list_servers(self, connection: PanelConnection) -> list[NormalizedServer]:
        data = await self.request(connection.url, ENDPOINTS["list_servers"], body={}, token=connection.token)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("ListServers raw response: %s", json.dumps(data, indent=2))
        return [normalize_server(row, status_prefix=CONNECT_STATUS_PREFIX) for row in _server_rows(data)]

    async def get_server(self, connection: PanelConnection, server_id: str) -> NormalizedServer:
        for server in await self.list_servers(connection):
            if server.id == server_id:
                return server
        raise ServerNotFoundError(server_id)

    async def _action(self, connection: PanelConnection, action: str, server_id: str) -> ActionResult:
        await self.request(connection.url, ENDPOINTS[action], body={"id": server_id}, token=connection.token, server_id=server_id)
        return ActionResult(success=True)

    async def start_server(self, connection: PanelConnection, server_id: str) -> ActionResult:
        return await self._action(connection, "start", server_id)

    async def stop_server(self, connection: PanelConnection, server_id: str) -> ActionResult:
        return await self._action(connection, "stop", server_id)

    async def restart_server(self, connection: PanelConnection, server_id: str) -> ActionResult:
        return await self._action(connection, "restart", server_id)
