"""
Status reconciliation loop.

Every interval the updater walks all guilds that have a status channel and
refreshes one message per pinned server:

- server found        -> status message (edited in place, or sent and recorded)
- server not found    -> pin deleted, message marked removed, then deleted
                         after a short grace period
- any other failure   -> "unreachable" message, pin kept

Guilds are visited in guild-id order and pins in server-id order. Ticks never
overlap: the scheduler job runs with max_instances=1 and sweep() itself skips
a tick while another one is still in progress.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelbot.config.loader import Settings
from panelbot.panel.errors import ServerNotFoundError, parse_error_message
from panelbot.panel.manager import SessionManager
from panelbot.storage import GuildConfig, PanelStore, PinnedServer

from .display import StatusDisplay, StatusPayload, quick_actions_for
from .fields import build_fields

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "status_sweep"


class StatusUpdater:
    def __init__(
        self,
        settings: Settings,
        store: PanelStore,
        manager: SessionManager,
        display: StatusDisplay,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.manager = manager
        self.display = display
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncIOScheduler()
        self._sweeping = False
        self._guild_locks: dict[str, asyncio.Lock] = {}

    # ── Lifecycle ───────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self.scheduler.get_job(SWEEP_JOB_ID) is not None

    def start(self) -> None:
        if self.running:
            return
        interval = self.settings.status.interval_seconds
        self.scheduler.add_job(
            self.sweep,
            "interval",
            seconds=interval,
            id=SWEEP_JOB_ID,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("Starting status updater with %ss interval", interval)

    def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.remove_job(SWEEP_JOB_ID)
        if self._owns_scheduler:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler.shutdown can finish on a later loop iteration.
            self.scheduler = AsyncIOScheduler()
        logger.info("Status updater stopped")

    # ── Sweeps ──────────────────────────────────────────────────────────────

    async def sweep(self) -> None:
        """One reconciliation tick over every guild with a status channel."""
        if self._sweeping:
            logger.warning("Previous status sweep still running; skipping this tick")
            return
        self._sweeping = True
        try:
            for guild in self.store.all_guilds():
                if guild.status_channel_id:
                    await self._update_guild(guild)
        finally:
            self._sweeping = False

    def forget_guild(self, guild_id: str) -> None:
        """Drop per-guild state once a guild is disconnected."""
        self._guild_locks.pop(str(guild_id), None)

    async def update_guild(self, guild_id: str) -> None:
        guild = self.store.get_guild(guild_id)
        if guild is None or not guild.status_channel_id:
            return
        await self._update_guild(guild)

    async def _update_guild(self, guild: GuildConfig) -> None:
        lock = self._guild_locks.setdefault(guild.guild_id, asyncio.Lock())
        async with lock:
            try:
                pins = self.store.get_pinned_servers(guild.guild_id)
                preferences = self.store.get_status_fields(guild.guild_id)
            except Exception:
                logger.exception("Failed to load pinned servers for guild %s", guild.guild_id)
                return

            for pin in pins:
                try:
                    await self._update_server(guild, pin, preferences)
                except Exception:
                    logger.exception(
                        "Failed to update status for server %s in guild %s", pin.server_id, guild.guild_id
                    )

    async def _update_server(self, guild: GuildConfig, pin: PinnedServer, preferences: dict[str, bool]) -> None:
        channel_id = guild.status_channel_id
        removed = False

        try:
            server = await self.manager.get_server(guild.guild_id, pin.server_id)
        except ServerNotFoundError:
            removed = True
            self.store.delete_pinned_server(guild.guild_id, pin.server_id)
            logger.info(
                'Server "%s" (%s) was removed from panel, unpinned from guild %s',
                pin.server_name, pin.server_id, guild.guild_id,
            )
            payload = StatusPayload(kind="removed", server_id=pin.server_id, server_name=pin.server_name)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "Panel unreachable for server %s in guild %s: %s",
                pin.server_id, guild.guild_id, parse_error_message(e),
            )
            payload = StatusPayload(kind="unreachable", server_id=pin.server_id, server_name=pin.server_name)
        else:
            payload = StatusPayload(
                kind="status",
                server_id=pin.server_id,
                server_name=server.name or pin.server_name,
                server=server,
                fields=build_fields(server, preferences),
                actions=quick_actions_for(server) if guild.quick_actions_enabled else [],
                interval_seconds=self.settings.status.interval_seconds,
            )

        if pin.status_message_id:
            if await self.display.edit(channel_id, pin.status_message_id, payload):
                if removed:
                    self._schedule_removal(channel_id, pin.status_message_id)
                return
            logger.debug("Status message %s not found, creating new one", pin.status_message_id)

        if removed:
            return

        message_id = await self.display.send(channel_id, payload)
        if message_id is not None:
            self.store.update_status_message_id(guild.guild_id, pin.server_id, message_id)
        else:
            logger.warning("Status channel %s not found or not a text channel", channel_id)

    def _schedule_removal(self, channel_id: str, message_id: str) -> None:
        delay = self.settings.status.removal_grace_seconds
        self.scheduler.add_job(
            self._delete_message,
            "date",
            run_date=datetime.now() + timedelta(seconds=delay),
            args=[channel_id, message_id],
            id=f"remove_status_{message_id}",
            replace_existing=True,
        )

    async def _delete_message(self, channel_id: str, message_id: str) -> None:
        try:
            await self.display.delete(channel_id, message_id)
        except Exception as e:  # noqa: BLE001
            logger.debug("Could not delete removed server message %s: %s", message_id, e)
