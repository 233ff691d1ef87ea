#!/usr/bin/env python3
"""
Config loading and validation tests.

Also usable as a script to validate a real config:
    python test_config_validator.py [config_file]
"""

import logging
import sys
from pathlib import Path

import pytest

from conftest import KEY_HEX
from panelbot.config.loader import _load_raw_config, apply_env_overrides, get_settings
from panelbot.config.validator import validate_config
from panelbot.panel.errors import ConfigurationError


def _single(**overrides):
    cfg = {
        "bot_token": "discord-token",
        "panel": {"url": "https://panel.example.com", "username": "admin", "password": "secret"},
    }
    cfg.update(overrides)
    return cfg


# ─── Validation ──────────────────────────────────────────────────────


class TestValidateConfig:
    def test_minimal_single_guild_passes(self):
        validate_config(_single())

    def test_minimal_multi_guild_passes(self):
        validate_config({"bot_token": "t", "multi_guild": True, "encryption_key": KEY_HEX})

    def test_missing_token(self):
        cfg = _single()
        del cfg["bot_token"]
        with pytest.raises(ConfigurationError, match="DISCORD_TOKEN"):
            validate_config(cfg)

    def test_single_guild_requires_panel_credentials(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_config({"bot_token": "t"})
        msg = str(exc.value)
        assert "PANEL_URL" in msg and "PANEL_USERNAME" in msg and "PANEL_PASSWORD" in msg

    def test_multi_guild_requires_encryption_key(self):
        with pytest.raises(ConfigurationError, match="ENCRYPTION_KEY"):
            validate_config({"bot_token": "t", "multi_guild": True})

    def test_bad_encryption_key(self):
        with pytest.raises(ConfigurationError, match="64-character hex"):
            validate_config(_single(encryption_key="abc"))

    def test_panel_url_scheme(self):
        cfg = _single()
        cfg["panel"]["url"] = "panel.example.com"
        with pytest.raises(ConfigurationError, match="http"):
            validate_config(cfg)

    def test_numeric_settings(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_config(_single(status={"interval_seconds": "soon", "removal_grace_seconds": -1}))
        assert "2 error(s)" in str(exc.value)

    def test_numeric_strings_from_env_are_accepted(self):
        validate_config(_single(status={"interval_seconds": "60"}))

    def test_log_level(self):
        validate_config(_single(log_level="WARN"))
        with pytest.raises(ConfigurationError, match="log_level"):
            validate_config(_single(log_level="verbose"))

    def test_multi_guild_must_be_bool(self):
        with pytest.raises(ConfigurationError, match="multi_guild"):
            validate_config(_single(multi_guild="yes"))

    def test_all_errors_reported_together(self, caplog):
        with caplog.at_level(logging.ERROR):
            with pytest.raises(ConfigurationError) as exc:
                validate_config({"multi_guild": True, "log_level": "loud"})
        assert "2 error(s)" in str(exc.value)
        assert "CONFIG VALIDATION FAILED" in caplog.text


# ─── Loading ─────────────────────────────────────────────────────────


class TestLoading:
    def test_env_overrides_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "bot_token: from-yaml\n"
            "panel:\n  url: https://yaml.example.com/\n  username: admin\n  password: pw\n"
            "status:\n  interval_seconds: 45\n"
        )
        settings = get_settings(str(path), environ={"DISCORD_TOKEN": "from-env", "STATUS_INTERVAL": "15"})
        assert settings.bot_token == "from-env"
        assert settings.status.interval_seconds == 15
        assert settings.panel.url == "https://yaml.example.com"
        assert settings.multi_guild is False

    def test_env_only_multi_guild(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        settings = get_settings(
            str(path),
            environ={"DISCORD_TOKEN": "t", "MULTI_GUILD": "TRUE", "ENCRYPTION_KEY": KEY_HEX, "LOG_LEVEL": "warn"},
        )
        assert settings.multi_guild is True
        assert settings.encryption_key == bytes.fromhex(KEY_HEX)
        assert settings.log_level == "warning"

    def test_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        settings = get_settings(
            str(path),
            environ={"DISCORD_TOKEN": "t", "PANEL_URL": "http://p", "PANEL_USERNAME": "u", "PANEL_PASSWORD": "p"},
        )
        assert settings.panel.request_timeout == 10.0
        assert settings.panel.token_refresh_buffer_seconds == 300
        assert settings.status.interval_seconds == 30
        assert settings.status.removal_grace_seconds == 10
        assert settings.encryption_key is None

    def test_multi_guild_other_values_are_false(self):
        assert apply_env_overrides({}, {"MULTI_GUILD": "1"})["multi_guild"] is False

    def test_empty_env_values_are_ignored(self):
        merged = apply_env_overrides({"bot_token": "yaml"}, {"DISCORD_TOKEN": ""})
        assert merged["bot_token"] == "yaml"

    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            _load_raw_config(str(tmp_path / "nope.yaml"))

    def test_non_mapping_root_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            _load_raw_config(str(path))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")
    config_file = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"

    print(f"Validating config: {config_file}")
    print("-" * 70)
    try:
        settings = get_settings(config_file if Path(config_file).exists() else None)
    except ConfigurationError:
        print("-" * 70)
        print("❌ Config validation FAILED")
        sys.exit(1)
    print("-" * 70)
    print("✅ Config validation PASSED")
    print(f"   Mode: {'multi-guild' if settings.multi_guild else 'single-guild'}")
    print(f"   Status interval: {settings.status.interval_seconds}s")
