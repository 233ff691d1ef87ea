"""
Configuration validator.

Validates the merged config.yaml + environment mapping: structure, required
fields for the selected guild mode, numeric settings and the encryption key.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from panelbot.panel.errors import ConfigurationError


logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("debug", "info", "warn", "warning", "error")

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")

# (section, key, minimum)
_INT_SETTINGS = (
    ("panel", "request_timeout_ms", 1),
    ("panel", "token_refresh_buffer_seconds", 0),
    ("status", "interval_seconds", 1),
    ("status", "max_retries", 0),
    ("status", "retry_delay_ms", 0),
    ("status", "removal_grace_seconds", 0),
)


def _is_int_like(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().lstrip("-").isdigit()


def validate_config(cfg: dict[str, Any], config_path: str = "config.yaml") -> None:
    """
    Validate the merged configuration mapping.

    Raises ConfigurationError listing every problem found.
    Logs detailed error messages before raising.

    Args:
        cfg: The merged config dictionary (YAML values overlaid with env vars)
        config_path: Path to config file (for error messages)
    """
    errors = []
    warnings = []

    # ── Check root structure ────────────────────────────────────────────────
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"Config root must be a mapping, got {type(cfg).__name__}")

    for section in ("panel", "status"):
        if section in cfg and not isinstance(cfg[section], dict):
            errors.append(f"'{section}' must be a mapping, got {type(cfg[section]).__name__}")

    panel = cfg.get("panel") if isinstance(cfg.get("panel"), dict) else {}

    # ── Required keys ───────────────────────────────────────────────────────
    missing = []
    if not cfg.get("bot_token"):
        missing.append("DISCORD_TOKEN")

    multi_guild = cfg.get("multi_guild", False)
    if not isinstance(multi_guild, bool):
        errors.append(f"'multi_guild' must be boolean, got {type(multi_guild).__name__}")
    elif multi_guild:
        if not cfg.get("encryption_key"):
            missing.append("ENCRYPTION_KEY")
        if panel.get("url"):
            warnings.append("PANEL_URL is ignored in multi-guild mode; each guild runs /setup")
    else:
        for key, env_name in (("url", "PANEL_URL"), ("username", "PANEL_USERNAME"), ("password", "PANEL_PASSWORD")):
            if not panel.get(key):
                missing.append(env_name)

    if missing:
        errors.append(f"Missing required settings: {', '.join(missing)}")

    # ── Encryption key ──────────────────────────────────────────────────────
    key = cfg.get("encryption_key")
    if key and (not isinstance(key, str) or not _HEX_KEY_RE.match(key)):
        errors.append(
            "ENCRYPTION_KEY must be a 64-character hex string (32 bytes). "
            "Generate with: openssl rand -hex 32"
        )

    # ── Panel URL ───────────────────────────────────────────────────────────
    url = panel.get("url")
    if url and (not isinstance(url, str) or not url.startswith(("http://", "https://"))):
        errors.append(f"'panel.url' must start with http:// or https://, got {url!r}")

    # ── Numeric settings ────────────────────────────────────────────────────
    for section, name, minimum in _INT_SETTINGS:
        block = cfg.get(section)
        if not isinstance(block, dict) or block.get(name) is None:
            continue
        value = block[name]
        if not _is_int_like(value):
            errors.append(f"'{section}.{name}' must be a valid integer, got {value!r}")
        elif int(value) < minimum:
            errors.append(f"'{section}.{name}' must be >= {minimum}, got {value}")

    # ── Log level ───────────────────────────────────────────────────────────
    level = cfg.get("log_level")
    if level is not None and (not isinstance(level, str) or level.lower() not in VALID_LOG_LEVELS):
        errors.append(f"'log_level' must be one of: debug, info, warn, error (got {level!r})")

    # ── Log warnings ────────────────────────────────────────────────────────
    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    # ── Log errors and raise if any ─────────────────────────────────────────
    if errors:
        logger.error("=" * 70)
        logger.error("CONFIG VALIDATION FAILED (%s)", config_path)
        logger.error("=" * 70)
        for i, error in enumerate(errors, 1):
            logger.error("[%d] %s", i, error)
        logger.error("=" * 70)
        logger.error("Please fix the errors above and restart the bot.")
        logger.error("=" * 70)
        raise ConfigurationError(f"Config validation failed with {len(errors)} error(s): " + "; ".join(errors))
