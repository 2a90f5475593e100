"""CamillaDSP websocket client: sessions, request queues and the facade."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "CancelToken",
    "ClientConfig",
    "DspClient",
    "DspError",
    "DspEvent",
    "LifecycleEvent",
    "RequestQueue",
    "SocketSession",
]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "CancelToken": ("camilla_eq.client.request_queue", "CancelToken"),
        "ClientConfig": ("camilla_eq.client.config", "ClientConfig"),
        "DspClient": ("camilla_eq.client.dsp_client", "DspClient"),
        "DspError": ("camilla_eq.client.errors", "DspError"),
        "DspEvent": ("camilla_eq.client.correlator", "DspEvent"),
        "LifecycleEvent": ("camilla_eq.client.socket_session", "LifecycleEvent"),
        "RequestQueue": ("camilla_eq.client.request_queue", "RequestQueue"),
        "SocketSession": ("camilla_eq.client.socket_session", "SocketSession"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
