"""
Normalization of panel server payloads.

Both panel protocols report server state with loosely-typed JSON whose keys
vary between panel versions. Everything here maps those payloads onto
NormalizedServer; fields the payload does not carry stay None.
"""

from __future__ import annotations

import math
import re
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from .types import NormalizedServer, ServerStatus

CONNECT_STATUS_PREFIX = "SERVER_STATUS_"
MOD_LOADER_PREFIX = "MOD_LOADER_"

STATUS_ALIASES: dict[str, ServerStatus] = {
    "running": "running",
    "online": "running",
    "stopped": "stopped",
    "offline": "stopped",
    "starting": "starting",
    "stopping": "stopping",
}

MOD_LOADER_LABELS = {
    "AUTO_CURSEFORGE": "CurseForge",
    "FORGE": "Forge",
    "FABRIC": "Fabric",
    "NEOFORGE": "NeoForge",
    "PAPER": "Paper",
    "SPIGOT": "Spigot",
    "VANILLA": "Vanilla",
    "QUILT": "Quilt",
}

# First present alias wins.
PLAYERS_ONLINE_KEYS = ("playersOnline", "players", "playerCount", "online")
PLAYERS_MAX_KEYS = ("maxPlayers", "playersMax", "playerLimit", "slots")
CPU_KEYS = ("cpuPercent", "cpu", "cpuUsage")
MEMORY_KEYS = ("memoryUsage", "memory", "ram")
VERSION_KEYS = ("mcVersion", "serverVersion")

_LEADING_NUMBER_RE = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def normalize_status(raw: Any, prefix: str | None = None) -> ServerStatus:
    if not isinstance(raw, str):
        return "unknown"
    cleaned = raw.strip()
    if prefix and cleaned.upper().startswith(prefix.upper()):
        cleaned = cleaned[len(prefix):]
    return STATUS_ALIASES.get(cleaned.casefold(), "unknown")


def normalize_mod_loader(raw: Any) -> Optional[str]:
    if not raw or not isinstance(raw, str):
        return None
    cleaned = raw
    if cleaned.upper().startswith(MOD_LOADER_PREFIX):
        cleaned = cleaned[len(MOD_LOADER_PREFIX):]
    return MOD_LOADER_LABELS.get(cleaned.upper(), cleaned)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else value
    if isinstance(value, str):
        # Leading numeric prefix, so "512MB" and "42.5%" both parse.
        match = _LEADING_NUMBER_RE.match(value)
        return float(match.group(0)) if match else None
    return None


def first_number(payload: Mapping[str, Any], keys: Iterable[str], allow_strings: bool = False) -> Optional[float]:
    """
    Numeric value of the first alias present in the payload.

    Later aliases are not consulted: a present value that is not a number
    (or a string when allow_strings is False) yields None.
    """
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not allow_strings:
            return None
        return _as_number(value)
    return None


def first_string(payload: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _as_int(value: Optional[float]) -> Optional[int]:
    return None if value is None else int(value)


def uptime_from_last_started(last_started: Any, now: float | None = None) -> Optional[int]:
    """Whole seconds since last_started (ISO-8601), or None when it can't be parsed."""
    if not last_started or not isinstance(last_started, str):
        return None
    text = last_started.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        started = datetime.fromisoformat(text)
    except ValueError:
        return None
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    current = time.time() if now is None else now
    return max(0, int(current - started.timestamp()))


def normalize_server(
    payload: Mapping[str, Any],
    status_prefix: str | None = None,
    now: float | None = None,
) -> NormalizedServer:
    status = normalize_status(payload.get("status"), status_prefix)

    players_online = first_number(payload, PLAYERS_ONLINE_KEYS)
    players_max = first_number(payload, PLAYERS_MAX_KEYS)
    if players_online is None and status == "running" and players_max is not None:
        players_online = 0

    uptime_raw = first_number(payload, ("uptime",))
    if uptime_raw is not None:
        uptime: Optional[int] = max(0, int(uptime_raw))
    else:
        uptime = uptime_from_last_started(payload.get("lastStarted"), now)

    return NormalizedServer(
        id=str(payload.get("id", "")),
        name=str(payload.get("name") or payload.get("id") or ""),
        status=status,
        mc_version=first_string(payload, VERSION_KEYS),
        mod_loader=normalize_mod_loader(payload.get("modLoader")),
        players_online=_as_int(players_online),
        players_max=_as_int(players_max),
        cpu_usage=first_number(payload, CPU_KEYS),
        memory_usage=first_number(payload, MEMORY_KEYS, allow_strings=True),
        uptime=uptime,
        tps=first_number(payload, ("tps",), allow_strings=True),
        disk_usage=first_number(payload, ("diskUsage",), allow_strings=True),
        disk_total=first_number(payload, ("diskTotal",), allow_strings=True),
    )
