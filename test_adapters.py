"""
Tests for the Connect and REST panel adapters and protocol detection.

HTTP is served by httpx.MockTransport; no network access.
"""

import asyncio
import json

import httpx
import pytest

from panelbot.panel.adapters import ConnectAdapter, RestAdapter, build_adapters, detect_protocol, get_adapter
from panelbot.panel.errors import (
    PanelAuthError,
    PanelConnectionError,
    PanelTimeoutError,
    ServerNotFoundError,
)
from panelbot.panel.types import PanelConnection

BASE = "https://panel.example.com"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _routes(table):
    """Build a handler from {(method, path): response-or-callable}; anything else is 404."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        route = table.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, text="Not Found")
        return route(request) if callable(route) else route

    handler.seen = seen
    return handler


CONNECT_LOGIN = ("POST", "/discopanel.v1.AuthService/Login")
CONNECT_LIST = ("POST", "/discopanel.v1.ServerService/ListServers")
REST_LOGIN = ("POST", "/api/v1/auth/login")


# ─── Connect ─────────────────────────────────────────────────────────


class TestConnectAdapter:
    @pytest.mark.asyncio
    async def test_login(self):
        handler = _routes({CONNECT_LOGIN: httpx.Response(200, json={"token": "abc", "expiresAt": 1_900_000_000})})
        async with _client(handler) as client:
            result = await ConnectAdapter(client).authenticate(BASE, "admin", "pw")
        assert (result.token, result.expires_at, result.protocol) == ("abc", 1_900_000_000, "connect")
        assert json.loads(handler.seen[0].content) == {"username": "admin", "password": "pw"}

    @pytest.mark.asyncio
    async def test_login_without_token(self):
        handler = _routes({CONNECT_LOGIN: httpx.Response(200, json={"ok": True})})
        async with _client(handler) as client:
            with pytest.raises(PanelAuthError):
                await ConnectAdapter(client).authenticate(BASE, "admin", "pw")

    @pytest.mark.asyncio
    async def test_list_servers_normalizes(self):
        body = {"servers": [
            {"id": "s1", "name": "Survival", "status": "SERVER_STATUS_RUNNING", "playerCount": 3, "maxPlayers": 20},
            {"id": "s2", "name": "Creative", "status": "SERVER_STATUS_STOPPED"},
        ]}
        handler = _routes({CONNECT_LIST: httpx.Response(200, json=body)})
        conn = PanelConnection(BASE, "tok", "connect")
        async with _client(handler) as client:
            servers = await ConnectAdapter(client).list_servers(conn)
        assert [(s.id, s.status) for s in servers] == [("s1", "running"), ("s2", "stopped")]
        assert servers[0].players_online == 3
        assert handler.seen[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_get_server_missing(self):
        handler = _routes({CONNECT_LIST: httpx.Response(200, json={"servers": []})})
        async with _client(handler) as client:
            with pytest.raises(ServerNotFoundError):
                await ConnectAdapter(client).get_server(PanelConnection(BASE, "tok", "connect"), "s9")

    @pytest.mark.asyncio
    async def test_action_posts_id(self):
        handler = _routes({("POST", "/discopanel.v1.ServerService/RestartServer"): httpx.Response(200)})
        async with _client(handler) as client:
            result = await ConnectAdapter(client).restart_server(PanelConnection(BASE, "tok", "connect"), "s1")
        assert result.success
        assert json.loads(handler.seen[0].content) == {"id": "s1"}


# ─── REST ────────────────────────────────────────────────────────────


class TestRestAdapter:
    @pytest.mark.asyncio
    async def test_get_server(self):
        handler = _routes({("GET", "/api/v1/servers/s1"): httpx.Response(200, json={"id": "s1", "status": "online"})})
        async with _client(handler) as client:
            server = await RestAdapter(client).get_server(PanelConnection(BASE, "tok", "rest"), "s1")
        assert server.status == "running"

    @pytest.mark.asyncio
    async def test_list_accepts_bare_array(self):
        handler = _routes({("GET", "/api/v1/servers"): httpx.Response(200, json=[{"id": "a"}, "junk"])})
        async with _client(handler) as client:
            servers = await RestAdapter(client).list_servers(PanelConnection(BASE, "tok", "rest"))
        assert [s.id for s in servers] == ["a"]

    @pytest.mark.asyncio
    async def test_404_is_server_not_found(self):
        async with _client(_routes({})) as client:
            with pytest.raises(ServerNotFoundError) as exc:
                await RestAdapter(client).get_server(PanelConnection(BASE, "tok", "rest"), "gone")
        assert exc.value.server_id == "gone"

    @pytest.mark.asyncio
    async def test_401_is_auth_error(self):
        handler = _routes({("GET", "/api/v1/servers"): httpx.Response(401)})
        async with _client(handler) as client:
            with pytest.raises(PanelAuthError) as exc:
                await RestAdapter(client).list_servers(PanelConnection(BASE, "tok", "rest"))
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_500_is_connection_error(self):
        handler = _routes({("GET", "/api/v1/servers"): httpx.Response(500, text="boom")})
        async with _client(handler) as client:
            with pytest.raises(PanelConnectionError, match="500 boom"):
                await RestAdapter(client).list_servers(PanelConnection(BASE, "tok", "rest"))

    @pytest.mark.asyncio
    async def test_action_path(self):
        handler = _routes({("POST", "/api/v1/servers/s1/start"): httpx.Response(204)})
        async with _client(handler) as client:
            result = await RestAdapter(client).start_server(PanelConnection(BASE, "tok", "rest"), "s1")
        assert result.success


# ─── Transport failures ──────────────────────────────────────────────


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_httpx_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(PanelTimeoutError):
                await RestAdapter(client, timeout=2).authenticate(BASE, "u", "p")

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={"token": "late"})

        async with _client(handler) as client:
            with pytest.raises(PanelTimeoutError) as exc:
                await RestAdapter(client, timeout=0.05).authenticate(BASE, "u", "p")
        assert exc.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(PanelConnectionError) as exc:
                await ConnectAdapter(client).authenticate(BASE, "u", "p")
        assert exc.value.url == BASE

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        handler = _routes({REST_LOGIN: httpx.Response(200, text="<html>")})
        async with _client(handler) as client:
            with pytest.raises(PanelConnectionError, match="Invalid JSON"):
                await RestAdapter(client).authenticate(BASE, "u", "p")


# ─── Detection ───────────────────────────────────────────────────────


class TestDetectProtocol:
    @pytest.mark.asyncio
    async def test_connect_preferred(self):
        handler = _routes({
            CONNECT_LOGIN: httpx.Response(200, json={"token": "c"}),
            REST_LOGIN: httpx.Response(200, json={"token": "r"}),
        })
        async with _client(handler) as client:
            result = await detect_protocol(build_adapters(client), BASE, "u", "p")
        assert result.protocol == "connect"
        assert len(handler.seen) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_rest(self):
        handler = _routes({REST_LOGIN: httpx.Response(200, json={"token": "r"})})
        async with _client(handler) as client:
            result = await detect_protocol(build_adapters(client), BASE, "u", "p")
        assert (result.protocol, result.token) == ("rest", "r")
        assert [r.url.path for r in handler.seen] == [CONNECT_LOGIN[1], REST_LOGIN[1]]

    @pytest.mark.asyncio
    async def test_both_fail(self):
        async with _client(_routes({})) as client:
            with pytest.raises(PanelAuthError, match="Neither Connect nor REST"):
                await detect_protocol(build_adapters(client), BASE, "u", "p")

    def test_get_adapter_rejects_auto(self):
        adapters = build_adapters(httpx.AsyncClient())
        assert isinstance(get_adapter(adapters, "rest"), RestAdapter)
        with pytest.raises(ValueError):
            get_adapter(adapters, "auto")
