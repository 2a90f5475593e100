from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from camilla_eq.client.correlator import CommandCorrelator, Observer
from camilla_eq.client.errors import DspCancelledError, DspConnectionError
from camilla_eq.client.request_queue import RequestQueue
from camilla_eq.protocol import Command

logger = logging.getLogger(__name__)

LIFECYCLE_OPEN = "open"
LIFECYCLE_CLOSE = "close"
LIFECYCLE_ERROR = "error"


@dataclass(frozen=True)
class LifecycleEvent:
    endpoint: str
    kind: str
    message: Optional[str] = None
    timestamp_ms: int = 0


class SocketSession:
    """Owns one duplex connection to a DSP endpoint.

    Inbound frames are read by a background task and handed to the
    correlator; outbound commands go through the session's request queue so
    at most one command is in flight.  Closure that was not requested through
    :meth:`disconnect` is reported to ``on_lifecycle``; nothing reconnects.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        on_lifecycle: Optional[Callable[[LifecycleEvent], None]] = None,
        observer: Optional[Observer] = None,
    ) -> None:
        self.endpoint = endpoint
        self.on_lifecycle = on_lifecycle
        self.queue = RequestQueue(endpoint)
        self.correlator = CommandCorrelator(
            endpoint,
            send_text=self._send_text,
            is_open=self.is_open,
            observer=observer,
        )
        self.url: Optional[str] = None
        self._ws: Any = None
        self._reader: Optional[asyncio.Task[None]] = None
        self._closing = False

    @property
    def observer(self) -> Optional[Observer]:
        return self.correlator.observer

    @observer.setter
    def observer(self, value: Optional[Observer]) -> None:
        self.correlator.observer = value

    def is_open(self) -> bool:
        ws = self._ws
        return ws is not None and ws.state is State.OPEN

    async def connect(self, url: str, *, open_timeout_s: float = 5.0) -> None:
        """Open the websocket; raises :class:`DspConnectionError` on failure."""

        if self._ws is not None:
            await self.disconnect()
        logger.info("Connecting to %s socket at %s", self.endpoint, url)
        try:
            ws = await websockets.connect(url, open_timeout=open_timeout_s, max_size=None)
        except Exception as exc:
            msg = str(exc) or exc.__class__.__name__
            self._emit(LIFECYCLE_ERROR, msg)
            raise DspConnectionError(f"{self.endpoint} socket handshake failed ({url}): {msg}") from exc
        self.url = url
        self._ws = ws
        self._closing = False
        self._reader = asyncio.get_running_loop().create_task(
            self._read_loop(ws), name=f"camilla-eq-{self.endpoint}-reader"
        )
        logger.info("Connected to %s socket", self.endpoint)
        self._emit(LIFECYCLE_OPEN)

    def request(self, command: Command, timeout_ms: int) -> "asyncio.Future[Any]":
        """Queue *command* behind any in-flight work on this endpoint."""

        return self.queue.enqueue(
            lambda token: self.correlator.send_once(command, timeout_ms, token)
        )

    async def disconnect(self, reason: BaseException | None = None) -> None:
        """Cancel outstanding work and close the socket."""

        self._closing = True
        cause = reason if reason is not None else DspCancelledError("Disconnected")
        self.queue.cancel_all(cause)
        self.correlator.fail_all(cause)
        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("%s socket close failed", self.endpoint, exc_info=True)
        if reader is not None:
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader
        if ws is not None:
            logger.info("Disconnected from %s socket", self.endpoint)

    async def _send_text(self, text: str) -> None:
        ws = self._ws
        if ws is None:
            raise DspConnectionError(f"{self.endpoint} WebSocket not connected")
        try:
            await ws.send(text)
        except ConnectionClosed as exc:
            raise DspConnectionError(f"{self.endpoint} socket closed while sending: {exc}") from exc

    async def _read_loop(self, ws: Any) -> None:
        kind = LIFECYCLE_CLOSE
        detail: str | None = None
        try:
            async for message in ws:
                try:
                    self.correlator.dispatch(message)
                except Exception:
                    logger.debug("%s frame dispatch failed", self.endpoint, exc_info=True)
        except ConnectionClosed as exc:
            detail = str(exc) or None
        except Exception as exc:
            kind = LIFECYCLE_ERROR
            detail = str(exc) or exc.__class__.__name__
            logger.debug("%s reader failed", self.endpoint, exc_info=True)

        if self._closing or self._ws is not ws:
            return
        self._ws = None
        if detail is None:
            code = getattr(ws, "close_code", None)
            reason = getattr(ws, "close_reason", None)
            detail = f"code={code} reason={reason or 'none'}"
        message = f"{self.endpoint} socket closed unexpectedly ({detail})"
        logger.warning("%s", message)
        self.correlator.fail_all(DspConnectionError(message))
        self._emit(kind, message)

    def _emit(self, kind: str, message: Optional[str] = None) -> None:
        callback = self.on_lifecycle
        if callback is None:
            return
        event = LifecycleEvent(
            endpoint=self.endpoint,
            kind=kind,
            message=message,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            callback(event)
        except Exception:
            logger.debug("%s lifecycle callback failed", self.endpoint, exc_info=True)
