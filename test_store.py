"""Tests for the msgpack-backed guild and pin store."""

import msgpack
import pytest

from panelbot.storage import PanelStore, parse_status_fields


def _guild(store, guild_id="g1"):
    return store.upsert_guild(guild_id, "https://panel.example.com", "rest", "admin", "enc-token", 1_900_000_000)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_load_creates_file(self, store):
        await store.load()
        assert store.path.exists()
        assert store.all_guilds() == []

    @pytest.mark.asyncio
    async def test_save_and_reload(self, store):
        await store.load()
        _guild(store)
        store.update_status_channel("g1", 1234)
        store.upsert_pinned_server("g1", "s1", "Survival")
        assert store.dirty
        await store.save()
        assert not store.dirty

        reloaded = PanelStore(store.path)
        await reloaded.load()
        guild = reloaded.get_guild("g1")
        assert guild.protocol == "rest"
        assert guild.encrypted_token == "enc-token"
        assert guild.status_channel_id == "1234"
        assert [p.server_id for p in reloaded.get_pinned_servers("g1")] == ["s1"]

    @pytest.mark.asyncio
    async def test_missing_sections_are_restored(self, store):
        store.path.write_bytes(msgpack.packb({"guilds": {}}, use_bin_type=True))
        await store.load()
        assert store.data["pinned_servers"] == {}
        assert store.dirty


class TestGuilds:
    def test_upsert_keeps_created_at(self, store):
        first = _guild(store)
        second = store.upsert_guild("g1", "https://other.example.com", "connect", "root", None, None)
        assert second.created_at == first.created_at
        assert second.panel_url == "https://other.example.com"
        assert second.encrypted_token is None

    def test_updates_on_missing_guild_return_false(self, store):
        assert store.update_guild_token("nope", "x", None) is False
        assert store.update_status_channel("nope", "1") is False
        assert store.set_quick_actions("nope", True) is False

    def test_status_fields(self, store):
        _guild(store)
        assert store.get_status_fields("g1") == {}
        store.set_status_fields("g1", {"cpu": False})
        assert store.get_status_fields("g1") == {"cpu": False}

    def test_quick_actions(self, store):
        _guild(store)
        store.set_quick_actions("g1", True)
        assert store.get_guild("g1").quick_actions_enabled is True

    def test_delete_guild_cascades_pins(self, store):
        _guild(store)
        store.upsert_pinned_server("g1", "s1", "Survival")
        store.delete_guild("g1")
        assert store.get_guild("g1") is None
        assert store.get_pinned_servers("g1") == []

    def test_all_guilds_sorted(self, store):
        _guild(store, "g2")
        _guild(store, "g1")
        assert [g.guild_id for g in store.all_guilds()] == ["g1", "g2"]


class TestPins:
    def test_pins_sorted_by_server_id(self, store):
        store.upsert_pinned_server("g1", "zeta", "Z")
        store.upsert_pinned_server("g1", "alpha", "A")
        assert [p.server_id for p in store.get_pinned_servers("g1")] == ["alpha", "zeta"]

    def test_upsert_renames_but_keeps_message(self, store):
        store.upsert_pinned_server("g1", "s1", "Old")
        store.update_status_message_id("g1", "s1", 99)
        pin = store.upsert_pinned_server("g1", "s1", "New")
        assert pin.server_name == "New"
        assert pin.status_message_id == "99"

    def test_delete_pin(self, store):
        store.upsert_pinned_server("g1", "s1", "Survival")
        assert store.delete_pinned_server("g1", "s1") is True
        assert store.delete_pinned_server("g1", "s1") is False
        assert store.get_pinned_server("g1", "s1") is None

    def test_delete_all_pins(self, store):
        store.upsert_pinned_server("g1", "s1", "A")
        store.upsert_pinned_server("g1", "s2", "B")
        store.delete_all_pinned_servers("g1")
        assert store.get_pinned_servers("g1") == []


class TestParseStatusFields:
    @pytest.mark.parametrize("blob", [None, "", "not json", "[1, 2]", 42])
    def test_malformed_yields_empty(self, blob):
        assert parse_status_fields(blob) == {}

    def test_non_boolean_values_dropped(self):
        assert parse_status_fields('{"cpu": false, "ram": "yes"}') == {"cpu": False}
