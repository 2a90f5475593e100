"""Protocol definitions for CamillaDSP websocket communication."""

from __future__ import annotations

from .commands import *  # noqa: F401,F403
from .commands import Command, ReplyEnvelope

__all__ = [name for name in globals().keys() if not name.startswith("_")]
