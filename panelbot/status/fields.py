"""
panelbot/status/fields.py

Single source of truth for the optional fields shown on a status message.
Each StatusField bundles: the id stored in guild preferences, its label, and
an extractor that returns the display string or None to omit the field.

Adding a new field only requires:
  1. Write an extractor below (server -> str | None)
  2. Add a StatusField to the built-in tuple at the bottom of this module
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from panelbot.panel.types import NormalizedServer, ServerStatus


STATUS_ICONS: dict[str, str] = {
    "running": "🟢",
    "stopped": "🔴",
    "starting": "🟡",
    "stopping": "🟡",
    "unknown": "⚪",
}


# ── StatusField ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StatusField:
    id: str
    label: str
    extract: Callable[[NormalizedServer], Optional[str]]
    emoji: str = ""
    inline: bool = True
    default_enabled: bool = True


@dataclass(frozen=True)
class FieldValue:
    label: str
    value: str
    inline: bool = True


_REGISTRY: dict[str, StatusField] = {}


def register_field(field: StatusField) -> None:
    if field.id in _REGISTRY:
        raise ValueError(f'Status field with ID "{field.id}" is already registered')
    _REGISTRY[field.id] = field


def get_fields() -> list[StatusField]:
    return list(_REGISTRY.values())


def get_field(field_id: str) -> Optional[StatusField]:
    return _REGISTRY.get(field_id)


def enabled_fields(preferences: Mapping[str, bool]) -> list[StatusField]:
    """Fields to show for a guild; an explicit preference overrides the default."""
    return [f for f in _REGISTRY.values() if preferences.get(f.id, f.default_enabled)]


def build_fields(server: NormalizedServer, preferences: Mapping[str, bool]) -> list[FieldValue]:
    values: list[FieldValue] = []
    for field in enabled_fields(preferences):
        value = field.extract(server)
        if value is not None:
            values.append(FieldValue(label=field.label, value=value, inline=field.inline))
    return values


# ── Formatters ────────────────────────────────────────────────────────────────

def status_icon(status: ServerStatus) -> str:
    return STATUS_ICONS.get(status, STATUS_ICONS["unknown"])


def format_uptime(seconds: int) -> str:
    days, rest = divmod(int(seconds), 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    parts: list[str] = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)


def format_players(online: Optional[int], maximum: Optional[int]) -> str:
    if online is None:
        return "N/A"
    if maximum is None:
        return f"{online}"
    return f"{online}/{maximum}"


def format_cpu(usage: Optional[float]) -> str:
    return "N/A" if usage is None else f"{usage:.1f}%"


def format_memory(usage: Optional[float]) -> str:
    # Panels report either a percentage or megabytes; values above 100 are
    # assumed to be MB. Unverified against the panel API.
    if usage is None:
        return "N/A"
    if usage > 100:
        return f"{usage / 1024:.1f} GB"
    return f"{usage:.1f}%"


def format_tps(tps: Optional[float]) -> str:
    return "N/A" if tps is None else f"{tps:.1f}"


def format_bytes(size: float) -> str:
    if size >= 1024 ** 3:
        return f"{size / 1024 ** 3:.1f} GB"
    if size >= 1024 ** 2:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024:.1f} KB"


def format_storage(used: Optional[float], total: Optional[float]) -> str:
    if used is None:
        return "N/A"
    if total is None:
        return format_bytes(used)
    return f"{format_bytes(used)} / {format_bytes(total)}"


# ── Extractors ────────────────────────────────────────────────────────────────

def _online(server: NormalizedServer) -> Optional[str]:
    return f"{status_icon(server.status)} {server.status.capitalize()}"


def _version(server: NormalizedServer) -> Optional[str]:
    parts: list[str] = []
    if server.mc_version:
        parts.append(server.mc_version)
    if server.mod_loader and server.mod_loader.lower() != "vanilla":
        parts.append(f"({server.mod_loader})")
    return " ".join(parts) if parts else None


def _players(server: NormalizedServer) -> Optional[str]:
    if server.status != "running" or server.players_online is None:
        return None
    return format_players(server.players_online, server.players_max)


def _cpu(server: NormalizedServer) -> Optional[str]:
    if server.status != "running" or server.cpu_usage is None:
        return None
    return format_cpu(server.cpu_usage)


def _ram(server: NormalizedServer) -> Optional[str]:
    if server.status != "running" or server.memory_usage is None:
        return None
    return format_memory(server.memory_usage)


def _uptime(server: NormalizedServer) -> Optional[str]:
    if server.status != "running" or server.uptime is None:
        return None
    return format_uptime(server.uptime)


def _tps(server: NormalizedServer) -> Optional[str]:
    if server.status != "running" or server.tps is None:
        return None
    return format_tps(server.tps)


def _storage(server: NormalizedServer) -> Optional[str]:
    if server.disk_usage is None:
        return None
    return format_storage(server.disk_usage, server.disk_total)


# ── Built-in fields (display order) ───────────────────────────────────────────

for _field in (
    StatusField("online", "Online Status", _online),
    StatusField("version", "Minecraft Version", _version, emoji="🎮"),
    StatusField("players", "Player Count", _players, emoji="👥"),
    StatusField("cpu", "CPU Usage", _cpu, emoji="💻"),
    StatusField("ram", "RAM Usage", _ram, emoji="🧠"),
    StatusField("uptime", "Uptime", _uptime, emoji="⏱️"),
    StatusField("tps", "TPS", _tps),
    StatusField("storage", "Storage", _storage),
):
    register_field(_field)
