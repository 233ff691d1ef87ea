"""Tests for Discord embed and button builders."""

import pytest

from panelbot.discord.embeds import (
    EMBED_COLORS,
    action_custom_id,
    action_view,
    parse_action_custom_id,
    payload_embed,
)
from panelbot.panel.errors import (
    PanelAuthError,
    PanelTimeoutError,
    ServerActionError,
    TenantNotConfiguredError,
    format_user_friendly_error,
)
from panelbot.panel.types import NormalizedServer
from panelbot.status.display import StatusPayload
from panelbot.status.fields import FieldValue


class TestCustomIds:
    def test_parse(self):
        assert parse_action_custom_id(action_custom_id("restart", "abc:1")) == ("restart", "abc:1")

    @pytest.mark.parametrize("custom_id", ["", "server_action:explode:s1", "other:start:s1", "server_action:start:"])
    def test_rejects_foreign_ids(self, custom_id):
        assert parse_action_custom_id(custom_id) is None


class TestPayloadEmbed:
    def test_status_embed(self):
        server = NormalizedServer(id="s1", name="Survival", status="running")
        payload = StatusPayload(
            kind="status", server_id="s1", server_name="Survival", server=server,
            fields=[FieldValue("Player Count", "2/10")], interval_seconds=30,
        )
        embed = payload_embed(payload)
        assert embed.title == "🟢 Survival"
        assert embed.color.value == EMBED_COLORS["running"]
        assert embed.fields[0].name == "> PLAYER COUNT"
        assert "2/10" in embed.fields[0].value
        assert embed.footer.text.endswith("Updates every 30s")

    def test_unreachable_embed(self):
        embed = payload_embed(StatusPayload(kind="unreachable", server_id="s1", server_name="Survival"))
        assert embed.description == "Unable to reach the panel"
        assert embed.color.value == EMBED_COLORS["warning"]

    def test_removed_embed(self):
        embed = payload_embed(StatusPayload(kind="removed", server_id="s1", server_name="Survival"))
        assert "unpinned" in embed.description


class TestActionView:
    @pytest.mark.asyncio
    async def test_buttons(self):
        view = action_view("s1", ["stop", "restart"])
        assert [item.custom_id for item in view.children] == ["server_action:stop:s1", "server_action:restart:s1"]

    def test_no_actions_no_view(self):
        assert action_view("s1", []) is None


class TestUserFacingErrors:
    def test_messages(self):
        assert "/setup" in format_user_friendly_error(TenantNotConfiguredError("g1"))
        assert "/setup" in format_user_friendly_error(PanelAuthError())
        assert "timed out" in format_user_friendly_error(PanelTimeoutError())
        assert format_user_friendly_error(ServerActionError("start", "s1")) == 'Failed to start server "s1"'
        assert "unexpected" in format_user_friendly_error(KeyError("internal detail"))
