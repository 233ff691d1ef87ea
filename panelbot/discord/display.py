from __future__ import annotations

import logging
from typing import Optional

import discord

from panelbot.status.display import StatusPayload

from .embeds import action_view, payload_embed

logger = logging.getLogger(__name__)


class DiscordStatusDisplay:
    """StatusDisplay that keeps one embed message per pinned server."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def _channel(self, channel_id: str) -> Optional[discord.abc.Messageable]:
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self.client.fetch_channel(int(channel_id))
            except (discord.NotFound, discord.Forbidden):
                return None
        if not isinstance(channel, (discord.TextChannel, discord.Thread)):
            return None
        return channel

    async def edit(self, channel_id: str, message_id: str, payload: StatusPayload) -> bool:
        channel = await self._channel(channel_id)
        if channel is None:
            return False
        message = channel.get_partial_message(int(message_id))
        view = action_view(payload.server_id, payload.actions)
        try:
            await message.edit(embed=payload_embed(payload), view=view)
        except discord.NotFound:
            return False
        return True

    async def send(self, channel_id: str, payload: StatusPayload) -> Optional[str]:
        channel = await self._channel(channel_id)
        if channel is None:
            return None
        view = action_view(payload.server_id, payload.actions)
        kwargs = {"embed": payload_embed(payload)}
        if view is not None:
            kwargs["view"] = view
        message = await channel.send(**kwargs)
        return str(message.id)

    async def delete(self, channel_id: str, message_id: str) -> None:
        channel = await self._channel(channel_id)
        if channel is None:
            return
        try:
            await channel.get_partial_message(int(message_id)).delete()
        except discord.NotFound:
            logger.debug("Status message %s already deleted", message_id)
