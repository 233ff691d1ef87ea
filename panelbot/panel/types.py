from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

ServerStatus = Literal["running", "stopped", "starting", "stopping", "unknown"]
ProtocolKind = Literal["connect", "rest", "auto"]


@dataclass(frozen=True)
class PanelConnection:
    url: str
    token: str
    protocol: ProtocolKind


@dataclass(frozen=True)
class AuthResult:
    token: str
    expires_at: Optional[int]  # seconds since epoch, None = never expires
    protocol: ProtocolKind


@dataclass(frozen=True)
class ActionResult:
    success: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class Session:
    token: str
    expires_at: Optional[int]
    protocol: ProtocolKind


@dataclass
class NormalizedServer:
    id: str
    name: str
    status: ServerStatus
    mc_version: Optional[str] = None
    mod_loader: Optional[str] = None
    players_online: Optional[int] = None
    players_max: Optional[int] = None
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None
    uptime: Optional[int] = None
    tps: Optional[float] = None
    disk_usage: Optional[float] = None
    disk_total: Optional[float] = None
