import asyncio
import logging
import os
import sys
from typing import Optional

import discord
from discord import app_commands
from discord.app_commands import Choice
from discord.ext import commands
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelbot.config.loader import get_settings
from panelbot.discord.display import DiscordStatusDisplay
from panelbot.discord.embeds import error_embed, info_embed, parse_action_custom_id, success_embed
from panelbot.discord.errors import handle_app_command_error, reply_error
from panelbot.panel.adapters import build_adapters
from panelbot.panel.errors import (
    ConfigurationError,
    PanelError,
    ServerActionError,
    TenantNotConfiguredError,
    parse_error_message,
)
from panelbot.panel.manager import SessionManager
from panelbot.status.fields import get_field, get_fields, status_icon
from panelbot.status.updater import StatusUpdater
from panelbot.storage import PanelStore

if os.environ.get("DEBUG"):
    logging.basicConfig(level=logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.DEBUG)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")

try:
    settings = get_settings()
except ConfigurationError as e:
    logging.error("%s", e)
    sys.exit(1)

logging.getLogger().setLevel(settings.log_level.upper())
if not os.environ.get("DEBUG"):
    logging.getLogger("httpx").setLevel(logging.WARNING)

MAX_AUTOCOMPLETE_CHOICES = 25

logging.info(
    f"🚀 Bot starting | mode: {'multi-guild' if settings.multi_guild else 'single-guild'} "
    f"| status interval: {settings.status.interval_seconds}s"
)

store = PanelStore(settings.store_path)
httpx_client = httpx.AsyncClient()
panel_manager = SessionManager(settings, store, build_adapters(httpx_client, settings.panel.request_timeout))
scheduler = AsyncIOScheduler()

intents = discord.Intents.default()
discord_bot = commands.Bot(intents=intents, command_prefix=None)
status_updater = StatusUpdater(settings, store, panel_manager, DiscordStatusDisplay(discord_bot), scheduler)
autosave_task: Optional[asyncio.Task] = None

admin_only = app_commands.default_permissions(manage_guild=True)


async def require_guild(interaction: discord.Interaction) -> str:
    """Guild id of the interaction, after making sure the guild has a panel configured."""
    guild_id = str(interaction.guild_id)
    await panel_manager.ensure_guild_setup(guild_id)
    if store.get_guild(guild_id) is None:
        raise TenantNotConfiguredError(guild_id)
    return guild_id


async def server_autocomplete(interaction: discord.Interaction, curr_str: str) -> list[Choice[str]]:
    try:
        guild_id = await require_guild(interaction)
        servers = await panel_manager.list_servers(guild_id)
    except PanelError as e:
        logging.debug(f"Server autocomplete failed: {parse_error_message(e)}")
        return []
    needle = curr_str.lower()
    return [
        Choice(name=f"{status_icon(s.status)} {s.name}"[:100], value=s.id)
        for s in servers
        if needle in s.name.lower() or needle in s.id.lower()
    ][:MAX_AUTOCOMPLETE_CHOICES]


# ── Setup ────────────────────────────────────────────────────────────────────

@discord_bot.tree.command(name="setup", description="Connect this server to a DiscoPanel instance")
@app_commands.guild_only()
@admin_only
async def setup_command(interaction: discord.Interaction, url: str, username: str, password: str) -> None:
    if panel_manager.is_single_guild_mode():
        await interaction.response.send_message(
            embed=info_embed("Setup", "This bot is connected to a fixed panel; /setup is not needed."), ephemeral=True
        )
        return
    await interaction.response.defer(ephemeral=True, thinking=True)
    result = await panel_manager.setup(str(interaction.guild_id), url, username, password)
    await interaction.followup.send(
        embed=success_embed("Connected", f"Panel connected using the **{result.protocol}** API."), ephemeral=True
    )
    logging.info(f"Guild {interaction.guild_id} set up by {interaction.user.id}")


@discord_bot.tree.command(name="disconnect", description="Disconnect this server from the panel and forget its settings")
@app_commands.guild_only()
@admin_only
async def disconnect_command(interaction: discord.Interaction) -> None:
    panel_manager.disconnect(str(interaction.guild_id))
    status_updater.forget_guild(str(interaction.guild_id))
    await interaction.response.send_message(
        embed=success_embed("Disconnected", "Panel settings and pinned servers were removed."), ephemeral=True
    )


# ── Servers ──────────────────────────────────────────────────────────────────

@discord_bot.tree.command(name="servers", description="List servers on the panel")
@app_commands.guild_only()
async def servers_command(interaction: discord.Interaction) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    guild_id = await require_guild(interaction)
    servers = await panel_manager.list_servers(guild_id)
    if not servers:
        await interaction.followup.send(embed=info_embed("Servers", "No servers found on the panel."), ephemeral=True)
        return
    lines = [f"{status_icon(s.status)} **{s.name}** `{s.id}`" for s in servers]
    await interaction.followup.send(embed=info_embed("Servers", "\n".join(lines)[:4096]), ephemeral=True)


server_group = app_commands.Group(
    name="server",
    description="Start, stop or restart a panel server",
    guild_only=True,
    default_permissions=discord.Permissions(manage_guild=True),
)


async def run_server_action(interaction: discord.Interaction, action: str, server_id: str) -> None:
    guild_id = await require_guild(interaction)
    handler = {
        "start": panel_manager.start_server,
        "stop": panel_manager.stop_server,
        "restart": panel_manager.restart_server,
    }[action]
    result = await handler(guild_id, server_id)
    if not result.success:
        raise ServerActionError(action, server_id, result.message)
    await interaction.followup.send(
        embed=success_embed(f"{action.capitalize()} requested", result.message or f"The panel accepted the {action} command."),
        ephemeral=True,
    )
    logging.info(f"{action} of server {server_id} requested by {interaction.user.id} in guild {guild_id}")


@server_group.command(name="start", description="Start a server")
@app_commands.autocomplete(server_id=server_autocomplete)
async def server_start_command(interaction: discord.Interaction, server_id: str) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    await run_server_action(interaction, "start", server_id)


@server_group.command(name="stop", description="Stop a server")
@app_commands.autocomplete(server_id=server_autocomplete)
async def server_stop_command(interaction: discord.Interaction, server_id: str) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    await run_server_action(interaction, "stop", server_id)


@server_group.command(name="restart", description="Restart a server")
@app_commands.autocomplete(server_id=server_autocomplete)
async def server_restart_command(interaction: discord.Interaction, server_id: str) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    await run_server_action(interaction, "restart", server_id)


discord_bot.tree.add_command(server_group)


# ── Status display ───────────────────────────────────────────────────────────

@discord_bot.tree.command(name="pin", description="Show a server's live status in the status channel")
@app_commands.guild_only()
@admin_only
@app_commands.autocomplete(server_id=server_autocomplete)
async def pin_command(interaction: discord.Interaction, server_id: str) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)
    guild_id = await require_guild(interaction)
    server = await panel_manager.get_server(guild_id, server_id)
    store.upsert_pinned_server(guild_id, server.id, server.name)
    guild = store.get_guild(guild_id)
    note = "" if guild and guild.status_channel_id else " Set a status channel with /status-channel to display it."
    await interaction.followup.send(embed=success_embed("Pinned", f"**{server.name}** is now pinned.{note}"), ephemeral=True)
    await status_updater.update_guild(guild_id)


@discord_bot.tree.command(name="unpin", description="Stop showing a server's status")
@app_commands.guild_only()
@admin_only
async def unpin_command(interaction: discord.Interaction, server_id: str) -> None:
    guild_id = str(interaction.guild_id)
    pin = store.get_pinned_server(guild_id, server_id)
    if pin is None:
        await interaction.response.send_message(embed=error_embed("Not pinned", f"`{server_id}` is not pinned."), ephemeral=True)
        return
    store.delete_pinned_server(guild_id, server_id)
    await interaction.response.send_message(embed=success_embed("Unpinned", f"**{pin.server_name}** was unpinned."), ephemeral=True)
    guild = store.get_guild(guild_id)
    if pin.status_message_id and guild and guild.status_channel_id:
        await status_updater.display.delete(guild.status_channel_id, pin.status_message_id)


@discord_bot.tree.command(name="status-channel", description="Set (or clear) the channel that shows pinned server status")
@app_commands.guild_only()
@admin_only
async def status_channel_command(interaction: discord.Interaction, channel: Optional[discord.TextChannel] = None) -> None:
    await interaction.response.defer(ephemeral=True)
    guild_id = await require_guild(interaction)
    store.update_status_channel(guild_id, str(channel.id) if channel else None)
    # Old messages live in the previous channel.
    for pin in store.get_pinned_servers(guild_id):
        store.update_status_message_id(guild_id, pin.server_id, None)
    text = f"Status messages will be posted in {channel.mention}." if channel else "Status channel cleared."
    await interaction.followup.send(embed=success_embed("Status channel", text), ephemeral=True)
    if channel:
        await status_updater.update_guild(guild_id)


@discord_bot.tree.command(name="status-field", description="Show or hide a field on status messages")
@app_commands.guild_only()
@admin_only
@app_commands.choices(field=[Choice(name=f.label, value=f.id) for f in get_fields()])
async def status_field_command(interaction: discord.Interaction, field: str, enabled: bool) -> None:
    await interaction.response.defer(ephemeral=True)
    guild_id = await require_guild(interaction)
    status_field = get_field(field)
    if status_field is None:
        await interaction.followup.send(embed=error_embed("Unknown field", f"`{field}`"), ephemeral=True)
        return
    preferences = store.get_status_fields(guild_id)
    preferences[field] = enabled
    store.set_status_fields(guild_id, preferences)
    state = "shown" if enabled else "hidden"
    await interaction.followup.send(
        embed=success_embed("Status fields", f"**{status_field.label}** will be {state}."), ephemeral=True
    )
    await status_updater.update_guild(guild_id)


@discord_bot.tree.command(name="quick-actions", description="Show start/stop/restart buttons on status messages")
@app_commands.guild_only()
@admin_only
async def quick_actions_command(interaction: discord.Interaction, enabled: bool) -> None:
    await interaction.response.defer(ephemeral=True)
    guild_id = await require_guild(interaction)
    store.set_quick_actions(guild_id, enabled)
    await interaction.followup.send(
        embed=success_embed("Quick actions", "Enabled." if enabled else "Disabled."), ephemeral=True
    )
    await status_updater.update_guild(guild_id)


@discord_bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
    await handle_app_command_error(interaction, error)


# ── Events ───────────────────────────────────────────────────────────────────

@discord_bot.event
async def on_ready() -> None:
    global autosave_task
    await discord_bot.tree.sync()
    logging.info(f"Synced {len(discord_bot.tree.get_commands())} slash commands")
    if autosave_task is None:
        autosave_task = asyncio.create_task(store.autosave_loop())
    if not status_updater.running:
        status_updater.start()


@discord_bot.event
async def on_interaction(interaction: discord.Interaction) -> None:
    if interaction.type != discord.InteractionType.component or not interaction.data:
        return
    parsed = parse_action_custom_id(str(interaction.data.get("custom_id", "")))
    if parsed is None:
        return
    action, server_id = parsed

    perms = getattr(interaction.user, "guild_permissions", None)
    if perms is None or not perms.manage_guild:
        await interaction.response.send_message(
            embed=error_embed("Error", "You do not have permission to use this command."), ephemeral=True
        )
        return

    try:
        await interaction.response.defer(ephemeral=True, thinking=True)
        await run_server_action(interaction, action, server_id)
    except Exception as e:
        logging.warning(f"Quick action {action} on {server_id} failed: {parse_error_message(e)}")
        await reply_error(interaction, e)


@discord_bot.event
async def on_guild_remove(guild: discord.Guild) -> None:
    panel_manager.disconnect(str(guild.id))
    status_updater.forget_guild(str(guild.id))
    logging.info(f"Removed from guild {guild.id}; panel settings deleted")


async def main() -> None:
    await store.load()
    try:
        await discord_bot.start(settings.bot_token)
    finally:
        status_updater.stop()
        if scheduler.running:
            scheduler.shutdown(wait=False)
        if autosave_task is not None:
            autosave_task.cancel()
        await store.save()
        await httpx_client.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
