from __future__ import annotations

from datetime import datetime
from typing import Optional

import discord

from panelbot.panel.types import ServerStatus
from panelbot.status.display import StatusPayload
from panelbot.status.fields import status_icon

EMBED_COLORS = {
    "success": 0x57F287,
    "error": 0xED4245,
    "warning": 0xFEE75C,
    "info": 0x5865F2,
    "running": 0x57F287,
    "stopped": 0xED4245,
    "starting": 0xFEE75C,
    "stopping": 0xFEE75C,
    "unknown": 0x95A5A6,
}

ACTION_BUTTON_PREFIX = "server_action"
ACTIONS = ("start", "stop", "restart")

_BUTTON_STYLES = {
    "start": (discord.ButtonStyle.success, "Start", "▶️"),
    "stop": (discord.ButtonStyle.danger, "Stop", "⏹️"),
    "restart": (discord.ButtonStyle.primary, "Restart", "🔄"),
}


def status_color(status: ServerStatus) -> int:
    return EMBED_COLORS.get(status, EMBED_COLORS["unknown"])


def _embed(color_key: str, title: str, description: Optional[str] = None) -> discord.Embed:
    embed = discord.Embed(color=EMBED_COLORS[color_key], title=title)
    if description:
        embed.description = description
    return embed


def success_embed(title: str, description: Optional[str] = None) -> discord.Embed:
    return _embed("success", f"✅ {title}", description)


def error_embed(title: str, description: Optional[str] = None) -> discord.Embed:
    return _embed("error", f"❌ {title}", description)


def info_embed(title: str, description: Optional[str] = None) -> discord.Embed:
    return _embed("info", title, description)


def server_status_embed(payload: StatusPayload) -> discord.Embed:
    server = payload.server
    status: ServerStatus = server.status if server else "unknown"
    footer = f"Last updated • Today at {datetime.now().strftime('%I:%M %p').lstrip('0')}"
    if payload.interval_seconds:
        footer += f" • Updates every {payload.interval_seconds}s"

    embed = discord.Embed(color=status_color(status), title=f"{status_icon(status)} {payload.server_name}")
    embed.set_footer(text=footer)
    for field in payload.fields:
        embed.add_field(name=f"> {field.label.upper()}", value=f"```\n{field.value}\n```", inline=field.inline)
    return embed


def unreachable_embed(server_name: str) -> discord.Embed:
    embed = _embed("warning", f"⚠️ {server_name}", "Unable to reach the panel")
    embed.set_footer(text="Last updated")
    embed.timestamp = discord.utils.utcnow()
    return embed


def server_removed_embed(server_name: str) -> discord.Embed:
    embed = _embed("unknown", f"🗑️ {server_name}", "This server was deleted from the panel and has been unpinned.")
    embed.set_footer(text="Removed")
    embed.timestamp = discord.utils.utcnow()
    return embed


def payload_embed(payload: StatusPayload) -> discord.Embed:
    if payload.kind == "removed":
        return server_removed_embed(payload.server_name)
    if payload.kind == "unreachable":
        return unreachable_embed(payload.server_name)
    return server_status_embed(payload)


def action_custom_id(action: str, server_id: str) -> str:
    return f"{ACTION_BUTTON_PREFIX}:{action}:{server_id}"


def parse_action_custom_id(custom_id: str) -> Optional[tuple[str, str]]:
    parts = custom_id.split(":", 2)
    if len(parts) != 3 or parts[0] != ACTION_BUTTON_PREFIX or parts[1] not in ACTIONS or not parts[2]:
        return None
    return parts[1], parts[2]


def action_view(server_id: str, actions: list[str]) -> Optional[discord.ui.View]:
    """Buttons are stateless; clicks are routed by custom_id in on_interaction."""
    if not actions:
        return None
    view = discord.ui.View(timeout=None)
    for action in actions:
        style, label, emoji = _BUTTON_STYLES[action]
        view.add_item(discord.ui.Button(
            style=style, label=label, emoji=emoji, custom_id=action_custom_id(action, server_id)
        ))
    return view
