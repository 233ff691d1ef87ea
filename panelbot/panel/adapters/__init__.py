from .base import DEFAULT_REQUEST_TIMEOUT, PanelAdapter
from .connect import ConnectAdapter
from .registry import build_adapters, detect_protocol, get_adapter
from .rest import RestAdapter

__all__ = [
    "DEFAULT_REQUEST_TIMEOUT",
    "PanelAdapter",
    "ConnectAdapter",
    "RestAdapter",
    "build_adapters",
    "detect_protocol",
    "get_adapter",
]
