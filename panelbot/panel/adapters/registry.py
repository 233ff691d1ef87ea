"""
panelbot/panel/adapters/registry.py

Single source of truth for the supported panel protocols.
Detection order is the insertion order of the registry: Connect first, then REST.
"""

from __future__ import annotations

import logging

import httpx

from ..errors import PanelAuthError, parse_error_message
from ..types import AuthResult, ProtocolKind
from .base import DEFAULT_REQUEST_TIMEOUT, PanelAdapter
from .connect import ConnectAdapter
from .rest import RestAdapter

logger = logging.getLogger(__name__)

_ADAPTER_CLASSES: tuple[type[PanelAdapter], ...] = (ConnectAdapter, RestAdapter)


def build_adapters(
    client: httpx.AsyncClient,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> dict[ProtocolKind, PanelAdapter]:
    """Return one adapter per protocol, keyed by kind, in detection order."""
    return {cls.kind: cls(client, timeout) for cls in _ADAPTER_CLASSES}


def get_adapter(adapters: dict[ProtocolKind, PanelAdapter], kind: ProtocolKind) -> PanelAdapter:
    """Resolve a concrete protocol kind. 'auto' means detection has not run yet."""
    adapter = adapters.get(kind)
    if adapter is None:
        raise ValueError(f"No panel adapter for protocol '{kind}'")
    return adapter


async def detect_protocol(
    adapters: dict[ProtocolKind, PanelAdapter],
    url: str,
    username: str,
    password: str,
) -> AuthResult:
    """
    Try each adapter's login in order and return the first success.

    Individual failures are only logged; the caller gets one combined error.
    """
    for kind, adapter in adapters.items():
        try:
            result = await adapter.authenticate(url, username, password)
        except Exception as e:  # noqa: BLE001
            logger.debug("Login via '%s' failed for %s: %s", kind, url, parse_error_message(e))
            continue
        logger.info("Detected '%s' panel protocol at %s", result.protocol, url)
        return result

    logger.warning("No panel protocol accepted the credentials at %s", url)
    raise PanelAuthError(
        "Failed to authenticate with panel. Neither Connect nor REST API responded. "
        "Please verify the panel URL and credentials."
    )
