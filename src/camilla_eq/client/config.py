from __future__ import annotations

"""
Runtime configuration for the DSP client.

`ClientConfig` collects the connection target and per-endpoint timeouts in
one place.  Values come from ``CAMILLA_EQ_*`` environment variables; anything
missing or unparseable falls back to the defaults below.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
import os

CONTROL = "control"
SPECTRUM = "spectrum"
ENDPOINTS = (CONTROL, SPECTRUM)


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


def _env_float(name: str, default: float) -> float:
    try:
        v = os.getenv(name)
        return float(v) if v not in (None, "") else float(default)
    except Exception:
        return float(default)


def _env_int(name: str, default: int) -> int:
    try:
        v = os.getenv(name)
        return int(v) if v not in (None, "") else int(default)
    except Exception:
        return int(default)


@dataclass(frozen=True)
class ClientConfig:
    """Connection target and timing knobs for both DSP endpoints."""

    host: Optional[str] = None
    control_port: int = 1234
    spectrum_port: int = 1235
    control_timeout_ms: int = 5000
    spectrum_timeout_ms: int = 2000
    open_timeout_s: float = 5.0
    overlay_path: Optional[str] = None

    def timeout_ms(self, endpoint: str) -> int:
        if endpoint == CONTROL:
            return self.control_timeout_ms
        if endpoint == SPECTRUM:
            return self.spectrum_timeout_ms
        raise ValueError(f"unknown endpoint: {endpoint!r}")

    def port(self, endpoint: str) -> int:
        if endpoint == CONTROL:
            return self.control_port
        if endpoint == SPECTRUM:
            return self.spectrum_port
        raise ValueError(f"unknown endpoint: {endpoint!r}")

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_env() -> "ClientConfig":
        # 'CONTROL_PORT' is the primary key; bare 'PORT' is the older spelling
        control_port = _env_int("CAMILLA_EQ_CONTROL_PORT", _env_int("CAMILLA_EQ_PORT", 1234))
        return ClientConfig(
            host=_env_str("CAMILLA_EQ_HOST"),
            control_port=control_port,
            spectrum_port=_env_int("CAMILLA_EQ_SPECTRUM_PORT", 1235),
            control_timeout_ms=_env_int("CAMILLA_EQ_CONTROL_TIMEOUT_MS", 5000),
            spectrum_timeout_ms=_env_int("CAMILLA_EQ_SPECTRUM_TIMEOUT_MS", 2000),
            open_timeout_s=_env_float("CAMILLA_EQ_OPEN_TIMEOUT_S", 5.0),
            overlay_path=_env_str("CAMILLA_EQ_OVERLAY_PATH"),
        )
