from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from panelbot.panel.crypto import parse_key
from panelbot.panel.errors import ConfigurationError

from .validator import validate_config


DEFAULT_CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "CONFIG_PATH"
DEFAULT_STORE_PATH = "data/panelcord.msgpack"

# env var -> (section or None, key)
ENV_OVERRIDES = {
    "DISCORD_TOKEN": (None, "bot_token"),
    "MULTI_GUILD": (None, "multi_guild"),
    "ENCRYPTION_KEY": (None, "encryption_key"),
    "LOG_LEVEL": (None, "log_level"),
    "STORE_PATH": (None, "store_path"),
    "PANEL_URL": ("panel", "url"),
    "PANEL_USERNAME": ("panel", "username"),
    "PANEL_PASSWORD": ("panel", "password"),
    "PANEL_REQUEST_TIMEOUT": ("panel", "request_timeout_ms"),
    "PANEL_TOKEN_REFRESH_BUFFER": ("panel", "token_refresh_buffer_seconds"),
    "STATUS_INTERVAL": ("status", "interval_seconds"),
    "STATUS_MAX_RETRIES": ("status", "max_retries"),
    "STATUS_RETRY_DELAY": ("status", "retry_delay_ms"),
    "STATUS_REMOVAL_GRACE": ("status", "removal_grace_seconds"),
}


@dataclass(frozen=True)
class PanelSettings:
    url: str | None = None
    username: str | None = None
    password: str | None = None
    request_timeout_ms: int = 10000
    token_refresh_buffer_seconds: int = 300

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_ms / 1000


@dataclass(frozen=True)
class StatusSettings:
    interval_seconds: int = 30
    # Reserved: the sweep does not retry individual servers yet.
    max_retries: int = 3
    retry_delay_ms: int = 5000
    removal_grace_seconds: int = 10


@dataclass(frozen=True)
class Settings:
    bot_token: str
    multi_guild: bool = False
    encryption_key: bytes | None = None
    panel: PanelSettings = PanelSettings()
    status: StatusSettings = StatusSettings()
    log_level: str = "info"
    store_path: Path = Path(DEFAULT_STORE_PATH)


def get_config_path() -> str:
    """
    Resolve the config path, preferring an explicit environment override.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return env_path
    return DEFAULT_CONFIG_FILE


def _load_raw_config(path: str | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    try:
        with open(cfg_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        if path or os.environ.get(CONFIG_ENV_VAR):
            raise ConfigurationError(f"Config file not found: {cfg_path}")
        logging.info("No %s found, using environment variables only", cfg_path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"YAML parsing error in {cfg_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping, got {type(data).__name__}")

    return data


def apply_env_overrides(cfg: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay non-empty environment variables onto the YAML config."""
    merged = dict(cfg)
    for section in ("panel", "status"):
        if isinstance(merged.get(section), dict):
            merged[section] = dict(merged[section])
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        if env_name == "MULTI_GUILD":
            value = value.strip().lower() == "true"
        if section is None:
            merged[key] = value
        else:
            block = merged.setdefault(section, {})
            if isinstance(block, dict):
                block[key] = value
    return merged


def build_settings(cfg: dict[str, Any]) -> Settings:
    """Convert a validated config mapping into Settings."""
    panel = cfg.get("panel") or {}
    status = cfg.get("status") or {}

    def _int(block: dict[str, Any], key: str, default: int) -> int:
        value = block.get(key)
        return default if value is None else int(value)

    key = cfg.get("encryption_key")
    level = str(cfg.get("log_level") or "info").lower()
    return Settings(
        bot_token=cfg["bot_token"],
        multi_guild=bool(cfg.get("multi_guild", False)),
        encryption_key=parse_key(key) if key else None,
        panel=PanelSettings(
            url=str(panel["url"]).rstrip("/") if panel.get("url") else None,
            username=panel.get("username"),
            password=panel.get("password"),
            request_timeout_ms=_int(panel, "request_timeout_ms", PanelSettings.request_timeout_ms),
            token_refresh_buffer_seconds=_int(
                panel, "token_refresh_buffer_seconds", PanelSettings.token_refresh_buffer_seconds
            ),
        ),
        status=StatusSettings(
            interval_seconds=_int(status, "interval_seconds", StatusSettings.interval_seconds),
            max_retries=_int(status, "max_retries", StatusSettings.max_retries),
            retry_delay_ms=_int(status, "retry_delay_ms", StatusSettings.retry_delay_ms),
            removal_grace_seconds=_int(status, "removal_grace_seconds", StatusSettings.removal_grace_seconds),
        ),
        log_level="warning" if level == "warn" else level,
        store_path=Path(cfg.get("store_path") or DEFAULT_STORE_PATH),
    )


def get_settings(path: str | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """
    Public helper for loading configuration.

    - Loads .env, then config.yaml (CONFIG_PATH if set; optional by default).
    - Environment variables override YAML values.
    - Raises ConfigurationError when validation fails.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ
    cfg_path = path or get_config_path()
    cfg = apply_env_overrides(_load_raw_config(path), environ)
    validate_config(cfg, cfg_path)
    return build_settings(cfg)
