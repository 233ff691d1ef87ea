from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol

from panelbot.panel.types import NormalizedServer

from .fields import FieldValue

PayloadKind = Literal["status", "unreachable", "removed"]


@dataclass
class StatusPayload:
    kind: PayloadKind
    server_id: str
    server_name: str
    server: Optional[NormalizedServer] = None
    fields: list[FieldValue] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)  # quick actions to offer, e.g. ["stop", "restart"]
    interval_seconds: Optional[int] = None


class StatusDisplay(Protocol):
    """Where status payloads end up (a Discord channel in production)."""

    async def edit(self, channel_id: str, message_id: str, payload: StatusPayload) -> bool:
        """Replace an existing message. False when the message no longer exists."""
        ...

    async def send(self, channel_id: str, payload: StatusPayload) -> Optional[str]:
        """Post a new message and return its id, or None if the channel is unusable."""
        ...

    async def delete(self, channel_id: str, message_id: str) -> None:
        ...


def quick_actions_for(server: NormalizedServer) -> list[str]:
    if server.status == "stopped":
        return ["start"]
    if server.status == "running":
        return ["stop", "restart"]
    return []
