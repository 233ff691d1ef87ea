from __future__ import annotations

import logging

import discord
from discord import app_commands

from panelbot.panel.errors import PanelError, format_user_friendly_error, parse_error_message

from .embeds import error_embed


def unwrap_error(error: Exception) -> Exception:
    """app_commands wraps callback exceptions in CommandInvokeError."""
    if isinstance(error, app_commands.CommandInvokeError) and error.original is not None:
        return error.original
    return error


async def reply_error(interaction: discord.Interaction, error: Exception) -> None:
    """
    Send a short, safe error message to the user (ephemeral).
    """
    embed = error_embed("Error", format_user_friendly_error(error))
    try:
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)
    except discord.HTTPException as e:
        logging.error("Failed to send error response: %s", e)


async def handle_app_command_error(interaction: discord.Interaction, error: Exception) -> None:
    """
    Standard handler for slash command errors.
    """
    error = unwrap_error(error)
    if isinstance(error, app_commands.CheckFailure):
        try:
            await interaction.response.send_message(
                embed=error_embed("Error", "You do not have permission to use this command."), ephemeral=True
            )
        except discord.HTTPException:
            pass
        return

    name = getattr(interaction.command, "name", "unknown")
    if isinstance(error, PanelError):
        logging.warning("App command '%s' failed: %s", name, parse_error_message(error))
    else:
        logging.exception("App command error in '%s': %s", name, error, exc_info=error)
    await reply_error(interaction, error)
