"""Opt-in debug logging for the DSP client loggers."""

from __future__ import annotations

import logging
import os

_DEBUG_VALUES = ("1", "true", "yes", "on", "dbg", "debug")
_LOCAL_HANDLER_ATTR = "_camilla_eq_local"
_LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"


def debug_flag_enabled(*names: str) -> bool:
    for name in names:
        if (os.getenv(name) or "").strip().lower() in _DEBUG_VALUES:
            return True
    return False


def maybe_enable_debug_logger(logger: logging.Logger, *flags: str) -> bool:
    """Attach a local DEBUG handler to *logger* when any of *flags* is set.

    Returns True when frame-level tracing should be emitted by the caller.
    """

    if not debug_flag_enabled(*(flags or ("CAMILLA_EQ_CLIENT_DEBUG",))):
        return False
    has_local = any(getattr(h, _LOCAL_HANDLER_ATTR, False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler.setLevel(logging.DEBUG)
        setattr(handler, _LOCAL_HANDLER_ATTR, True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True


def configure_cli_logging(debug: bool = False) -> None:
    # Keep root at INFO; only the camilla_eq loggers drop to DEBUG
    logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT)
    if debug or debug_flag_enabled("CAMILLA_EQ_CLIENT_DEBUG"):
        logging.getLogger("camilla_eq").setLevel(logging.DEBUG)
    if not debug_flag_enabled("CAMILLA_EQ_WEBSOCKETS_DEBUG"):
        for name in ("websockets", "websockets.client", "websockets.protocol"):
            logging.getLogger(name).setLevel(logging.INFO)
