from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

import msgpack

from panelbot.panel.types import ProtocolKind

logger = logging.getLogger(__name__)

DEFAULT_STORE: dict[str, Any] = {
    "meta": {"version": 1},
    "guilds": {},
    "pinned_servers": {},
}


@dataclass
class GuildConfig:
    guild_id: str
    panel_url: str
    protocol: ProtocolKind
    username: str
    encrypted_token: Optional[str] = None
    token_expires_at: Optional[int] = None
    status_channel_id: Optional[str] = None
    status_fields: str = "{}"
    quick_actions_enabled: bool = False
    created_at: int = 0
    updated_at: int = 0


@dataclass
class PinnedServer:
    guild_id: str
    server_id: str
    server_name: str
    status_message_id: Optional[str] = None
    created_at: int = 0


def _now() -> int:
    return int(time.time())


class PanelStore:
    """
    Guild and pinned-server rows kept in one msgpack file.

    Row operations are synchronous and only mark the store dirty; save() and
    autosave_loop() write the file atomically.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._dirty = False
        self.data: dict[str, Any] = _clone_defaults()

    async def load(self) -> None:
        async with self._lock:
            if not self.path.exists():
                self.data = _clone_defaults()
                await self._save_unlocked()
                return
            raw = self.path.read_bytes()
            self.data = msgpack.unpackb(raw, raw=False)
            self._ensure_schema()

    async def autosave_loop(self, interval: float = 5) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._dirty:
                await self.save()

    async def save(self) -> None:
        async with self._lock:
            await self._save_unlocked()

    async def _save_unlocked(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        packed = msgpack.packb(self.data, use_bin_type=True)
        tmp.write_bytes(packed)
        tmp.replace(self.path)
        self._dirty = False

    def touch(self) -> None:
        self._dirty = True

    @property
    def dirty(self) -> bool:
        return self._dirty

    def _ensure_schema(self) -> None:
        defaults = _clone_defaults()
        for key, value in defaults.items():
            if key not in self.data:
                self.data[key] = value
                self._dirty = True

    # ── Guilds ──────────────────────────────────────────────────────────────

    def _guild_row(self, guild_id: str) -> Optional[dict[str, Any]]:
        return self.data["guilds"].get(str(guild_id))

    def get_guild(self, guild_id: str) -> Optional[GuildConfig]:
        row = self._guild_row(guild_id)
        return GuildConfig(**row) if row else None

    def all_guilds(self) -> list[GuildConfig]:
        return [GuildConfig(**self.data["guilds"][gid]) for gid in sorted(self.data["guilds"])]

    def upsert_guild(
        self,
        guild_id: str,
        panel_url: str,
        protocol: ProtocolKind,
        username: str,
        encrypted_token: Optional[str],
        token_expires_at: Optional[int],
    ) -> GuildConfig:
        guild_id = str(guild_id)
        row = self._guild_row(guild_id)
        if row is None:
            row = asdict(GuildConfig(guild_id=guild_id, panel_url=panel_url, protocol=protocol,
                                     username=username, created_at=_now()))
            self.data["guilds"][guild_id] = row
        row.update(
            panel_url=panel_url,
            protocol=protocol,
            username=username,
            encrypted_token=encrypted_token,
            token_expires_at=token_expires_at,
            updated_at=_now(),
        )
        self.touch()
        return GuildConfig(**row)

    def _update_guild(self, guild_id: str, **fields: Any) -> bool:
        row = self._guild_row(guild_id)
        if row is None:
            return False
        row.update(fields, updated_at=_now())
        self.touch()
        return True

    def update_guild_token(self, guild_id: str, encrypted_token: Optional[str], token_expires_at: Optional[int]) -> bool:
        return self._update_guild(guild_id, encrypted_token=encrypted_token, token_expires_at=token_expires_at)

    def update_guild_protocol(self, guild_id: str, protocol: ProtocolKind) -> bool:
        return self._update_guild(guild_id, protocol=protocol)

    def update_status_channel(self, guild_id: str, channel_id: Optional[str]) -> bool:
        return self._update_guild(guild_id, status_channel_id=None if channel_id is None else str(channel_id))

    def set_quick_actions(self, guild_id: str, enabled: bool) -> bool:
        return self._update_guild(guild_id, quick_actions_enabled=bool(enabled))

    def get_status_fields(self, guild_id: str) -> dict[str, bool]:
        row = self._guild_row(guild_id)
        return parse_status_fields(row.get("status_fields") if row else None)

    def set_status_fields(self, guild_id: str, fields: dict[str, bool]) -> bool:
        return self._update_guild(guild_id, status_fields=json.dumps(fields))

    def delete_guild(self, guild_id: str) -> None:
        guild_id = str(guild_id)
        removed = self.data["guilds"].pop(guild_id, None)
        pins = self.data["pinned_servers"].pop(guild_id, None)
        if removed is not None or pins is not None:
            self.touch()

    # ── Pinned servers ──────────────────────────────────────────────────────

    def _pins(self, guild_id: str) -> dict[str, dict[str, Any]]:
        return self.data["pinned_servers"].get(str(guild_id), {})

    def get_pinned_servers(self, guild_id: str) -> list[PinnedServer]:
        pins = self._pins(guild_id)
        return [PinnedServer(**pins[sid]) for sid in sorted(pins)]

    def get_pinned_server(self, guild_id: str, server_id: str) -> Optional[PinnedServer]:
        row = self._pins(guild_id).get(str(server_id))
        return PinnedServer(**row) if row else None

    def upsert_pinned_server(self, guild_id: str, server_id: str, server_name: str) -> PinnedServer:
        guild_id, server_id = str(guild_id), str(server_id)
        pins = self.data["pinned_servers"].setdefault(guild_id, {})
        row = pins.get(server_id)
        if row is None:
            row = asdict(PinnedServer(guild_id=guild_id, server_id=server_id, server_name=server_name,
                                      created_at=_now()))
            pins[server_id] = row
        else:
            row["server_name"] = server_name
        self.touch()
        return PinnedServer(**row)

    def update_status_message_id(self, guild_id: str, server_id: str, message_id: Optional[str]) -> bool:
        row = self._pins(guild_id).get(str(server_id))
        if row is None:
            return False
        row["status_message_id"] = None if message_id is None else str(message_id)
        self.touch()
        return True

    def delete_pinned_server(self, guild_id: str, server_id: str) -> bool:
        pins = self._pins(guild_id)
        if pins.pop(str(server_id), None) is None:
            return False
        if not pins:
            self.data["pinned_servers"].pop(str(guild_id), None)
        self.touch()
        return True

    def delete_all_pinned_servers(self, guild_id: str) -> None:
        if self.data["pinned_servers"].pop(str(guild_id), None) is not None:
            self.touch()


def parse_status_fields(blob: Any) -> dict[str, bool]:
    """Decode the stored field-preference JSON; anything malformed yields {}."""
    if not blob or not isinstance(blob, str):
        return {}
    try:
        data = json.loads(blob)
    except ValueError:
        logger.warning("Ignoring malformed status_fields blob")
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k): bool(v) for k, v in data.items() if isinstance(v, bool)}


def _clone_defaults() -> dict[str, Any]:
    return msgpack.unpackb(msgpack.packb(DEFAULT_STORE, use_bin_type=True), raw=False)
