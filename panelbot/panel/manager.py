"""
Panel session manager.

Keeps one live Session per guild (or one shared session in single-guild
mode), refreshes it before it expires, persists new tokens encrypted, and
retries a call exactly once when the panel rejects a token it had accepted.

Refreshes are single-flight per session key: a caller that arrives while a
refresh is in flight awaits that same login and gets its session or its error.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from panelbot.config.loader import Settings
from panelbot.storage import PanelStore

from . import crypto
from .adapters import PanelAdapter, detect_protocol, get_adapter
from .errors import (
    ConfigurationError,
    DecryptionError,
    PanelAuthError,
    TenantNotConfiguredError,
)
from .types import ActionResult, AuthResult, NormalizedServer, PanelConnection, ProtocolKind, Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

SINGLE_GUILD_KEY = "__single_guild__"
SESSION_EXPIRED_MESSAGE = "Session expired. Please run /setup again to reconnect."


class SessionManager:
    def __init__(
        self,
        settings: Settings,
        store: PanelStore,
        adapters: dict[ProtocolKind, PanelAdapter],
    ) -> None:
        self.settings = settings
        self.store = store
        self.adapters = adapters
        self._credentials: dict[str, tuple[str, str]] = {}
        self._sessions: dict[str, Session] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    # ── State helpers ───────────────────────────────────────────────────────

    def is_single_guild_mode(self) -> bool:
        return not self.settings.multi_guild

    def needs_refresh(self, expires_at: Optional[int], now: Optional[float] = None) -> bool:
        if expires_at is None:
            return False
        current = time.time() if now is None else now
        return expires_at - current < self.settings.panel.token_refresh_buffer_seconds

    def _session_key(self, guild_id: str) -> str:
        return SINGLE_GUILD_KEY if self.is_single_guild_mode() else str(guild_id)

    def _usable(self, session: Optional[Session]) -> bool:
        return session is not None and not self.needs_refresh(session.expires_at)

    def _encrypt_token(self, token: str) -> Optional[str]:
        key = self.settings.encryption_key
        return crypto.encrypt(token, key) if key else None

    # ── Authentication ──────────────────────────────────────────────────────

    async def setup(self, guild_id: str, panel_url: str, username: str, password: str) -> AuthResult:
        """Run protocol detection for a guild and persist the resulting session."""
        if self.settings.encryption_key is None:
            raise ConfigurationError("Interactive setup requires ENCRYPTION_KEY", "ENCRYPTION_KEY")

        guild_id = str(guild_id)
        normalized_url = panel_url.rstrip("/")
        result = await detect_protocol(self.adapters, normalized_url, username, password)
        encrypted = self._encrypt_token(result.token)

        self.store.upsert_guild(guild_id, normalized_url, result.protocol, username, encrypted, result.expires_at)
        self._credentials[guild_id] = (username, password)
        self._sessions[guild_id] = Session(result.token, result.expires_at, result.protocol)
        logger.info("Guild %s connected to %s using '%s' protocol", guild_id, normalized_url, result.protocol)
        return result

    async def ensure_guild_setup(self, guild_id: str) -> None:
        """Single-guild mode: create the guild row from the configured panel on first use."""
        if not self.is_single_guild_mode():
            return
        if self.store.get_guild(guild_id) is not None:
            return

        session = self._sessions.get(SINGLE_GUILD_KEY)
        if not self._usable(session):
            session = await self._refresh(guild_id, stale_token=session.token if session else None)

        panel = self.settings.panel
        self.store.upsert_guild(
            str(guild_id),
            panel.url or "",
            session.protocol,
            panel.username or "",
            self._encrypt_token(session.token),
            session.expires_at,
        )
        logger.info("Registered guild %s against configured panel %s", guild_id, panel.url)

    async def _authenticate_single(self) -> AuthResult:
        panel = self.settings.panel
        return await detect_protocol(self.adapters, panel.url or "", panel.username or "", panel.password or "")

    async def _authenticate_guild(self, guild_id: str) -> AuthResult:
        guild = self.store.get_guild(guild_id)
        if guild is None:
            raise TenantNotConfiguredError(guild_id)

        creds = self._credentials.get(guild_id)
        if creds is None:
            raise PanelAuthError(SESSION_EXPIRED_MESSAGE)
        username, password = creds

        if guild.protocol == "auto":
            result = await detect_protocol(self.adapters, guild.panel_url, username, password)
            self.store.update_guild_protocol(guild_id, result.protocol)
        else:
            adapter = get_adapter(self.adapters, guild.protocol)
            result = await adapter.authenticate(guild.panel_url, username, password)

        self.store.update_guild_token(guild_id, self._encrypt_token(result.token), result.expires_at)
        return result

    async def _refresh(self, guild_id: str, stale_token: Optional[str] = None) -> Session:
        """
        Re-authenticate and cache a new session.

        Callers arriving while a login for the same key is in flight await
        that login instead of starting their own, and share its outcome.
        A session that already replaced stale_token is reused as is.
        """
        key = self._session_key(guild_id)
        pending = self._inflight.get(key)
        if pending is None:
            current = self._sessions.get(key)
            if current is not None and current.token != stale_token and self._usable(current):
                return current
            pending = asyncio.create_task(self._login(key, str(guild_id)))
            self._inflight[key] = pending
            pending.add_done_callback(lambda task: self._clear_inflight(key, task))
        return await asyncio.shield(pending)

    def _clear_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _login(self, key: str, guild_id: str) -> Session:
        logger.debug("Refreshing panel session for %s", key)
        if self.is_single_guild_mode():
            result = await self._authenticate_single()
            if self.store.get_guild(guild_id) is not None:
                self.store.update_guild_protocol(guild_id, result.protocol)
                self.store.update_guild_token(guild_id, self._encrypt_token(result.token), result.expires_at)
        else:
            result = await self._authenticate_guild(guild_id)

        session = Session(result.token, result.expires_at, result.protocol)
        self._sessions[key] = session
        return session

    def _load_persisted_session(self, guild_id: str) -> Optional[Session]:
        guild = self.store.get_guild(guild_id)
        if guild is None:
            raise TenantNotConfiguredError(guild_id)
        if not guild.encrypted_token or guild.protocol == "auto" or self.settings.encryption_key is None:
            return None
        try:
            token = crypto.decrypt(guild.encrypted_token, self.settings.encryption_key)
        except DecryptionError as e:
            logger.warning("Stored token for guild %s is unusable (%s); re-authenticating", guild_id, e)
            return None
        session = Session(token, guild.token_expires_at, guild.protocol)
        self._sessions[guild_id] = session
        return session

    async def get_connection(self, guild_id: str) -> PanelConnection:
        """Return a connection with a usable token, refreshing first if needed."""
        guild_id = str(guild_id)
        key = self._session_key(guild_id)

        if self.is_single_guild_mode():
            url = self.settings.panel.url or ""
            session = self._sessions.get(key)
        else:
            guild = self.store.get_guild(guild_id)
            if guild is None:
                raise TenantNotConfiguredError(guild_id)
            url = guild.panel_url
            session = self._sessions.get(key) or self._load_persisted_session(guild_id)

        if not self._usable(session):
            session = await self._refresh(guild_id, stale_token=session.token if session else None)

        return PanelConnection(url=url, token=session.token, protocol=session.protocol)

    # ── Panel calls ─────────────────────────────────────────────────────────

    async def _call(
        self,
        guild_id: str,
        operation: Callable[[PanelAdapter, PanelConnection], Awaitable[T]],
    ) -> T:
        connection = await self.get_connection(guild_id)
        try:
            return await operation(get_adapter(self.adapters, connection.protocol), connection)
        except PanelAuthError:
            logger.info("Panel rejected token for guild %s; refreshing and retrying once", guild_id)

        session = await self._refresh(str(guild_id), stale_token=connection.token)
        retry = PanelConnection(url=connection.url, token=session.token, protocol=session.protocol)
        return await operation(get_adapter(self.adapters, retry.protocol), retry)

    async def list_servers(self, guild_id: str) -> list[NormalizedServer]:
        return await self._call(guild_id, lambda adapter, conn: adapter.list_servers(conn))

    async def get_server(self, guild_id: str, server_id: str) -> NormalizedServer:
        return await self._call(guild_id, lambda adapter, conn: adapter.get_server(conn, server_id))

    async def start_server(self, guild_id: str, server_id: str) -> ActionResult:
        return await self._call(guild_id, lambda adapter, conn: adapter.start_server(conn, server_id))

    async def stop_server(self, guild_id: str, server_id: str) -> ActionResult:
        return await self._call(guild_id, lambda adapter, conn: adapter.stop_server(conn, server_id))

    async def restart_server(self, guild_id: str, server_id: str) -> ActionResult:
        return await self._call(guild_id, lambda adapter, conn: adapter.restart_server(conn, server_id))

    def disconnect(self, guild_id: str) -> None:
        """Forget a guild's credentials and delete its stored config and pins."""
        guild_id = str(guild_id)
        self._credentials.pop(guild_id, None)
        if not self.is_single_guild_mode():
            self._sessions.pop(guild_id, None)
        self.store.delete_guild(guild_id)
        logger.info("Guild %s disconnected from panel", guild_id)
