"""Shared fixtures for panelcord tests."""

import pytest

from panelbot.config.loader import PanelSettings, Settings, StatusSettings
from panelbot.panel.crypto import parse_key
from panelbot.storage import PanelStore

KEY_HEX = "0123456789abcdef" * 4


@pytest.fixture
def key() -> bytes:
    return parse_key(KEY_HEX)


@pytest.fixture
def single_settings(key) -> Settings:
    return Settings(
        bot_token="discord-token",
        multi_guild=False,
        encryption_key=key,
        panel=PanelSettings(url="https://panel.example.com", username="admin", password="secret"),
        status=StatusSettings(interval_seconds=30, removal_grace_seconds=10),
    )


@pytest.fixture
def multi_settings(key) -> Settings:
    return Settings(bot_token="discord-token", multi_guild=True, encryption_key=key)


@pytest.fixture
def store(tmp_path) -> PanelStore:
    return PanelStore(tmp_path / "data" / "store.msgpack")
