"""Reply correlation for one DSP endpoint.

The server echoes the command name as the only key of every reply, so the
in-flight table is keyed by command name.  Each name has at most one owner;
a reply with no owner (typically the late answer to a command that already
timed out) is dropped instead of being handed to whichever operation happens
to be waiting next.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from camilla_eq.client.errors import (
    DspCommandError,
    DspConnectionError,
    DspError,
    DspProtocolError,
    DspTimeoutError,
)
from camilla_eq.client.logging_policy import maybe_enable_debug_logger
from camilla_eq.client.request_queue import CancelToken
from camilla_eq.protocol import Command, ReplyEnvelope, command_name, encode_command, peek_command_name

logger = logging.getLogger(__name__)

_TRACE = maybe_enable_debug_logger(logger)


@dataclass(frozen=True)
class DspEvent:
    """Diagnostic record of one settled operation."""

    timestamp_ms: int
    endpoint: str
    command: str
    request: str
    response: Any
    ok: bool


Observer = Callable[[DspEvent], None]


class CommandCorrelator:
    """Send commands and match replies for a single connection."""

    def __init__(
        self,
        endpoint: str,
        *,
        send_text: Callable[[str], Awaitable[None]],
        is_open: Callable[[], bool],
        observer: Optional[Observer] = None,
    ) -> None:
        self.endpoint = endpoint
        self._send_text = send_text
        self._is_open = is_open
        self.observer = observer
        self._owners: Dict[str, asyncio.Future[str]] = {}

    @property
    def in_flight(self) -> tuple[str, ...]:
        return tuple(self._owners)

    async def send_once(self, command: Command, timeout_ms: int, cancel: CancelToken) -> Any:
        """Write *command* and wait for its matching reply.

        Exactly one of reply, timeout or cancellation settles the call.
        """

        if not self._is_open():
            raise DspConnectionError(f"{self.endpoint} WebSocket not connected")

        name = command_name(command)
        request = encode_command(command)
        if cancel.cancelled:
            reason = cancel.reason
            self._report(False, name, request, str(reason))
            raise reason  # type: ignore[misc]
        if name in self._owners:
            raise DspError(f"{self.endpoint}: command {name} is already in flight")

        loop = asyncio.get_running_loop()
        settled: asyncio.Future[str] = loop.create_future()
        self._owners[name] = settled

        def _on_timeout() -> None:
            _settle_exception(
                settled,
                DspTimeoutError(f"DSP command timed out after {timeout_ms}ms: {name}"),
            )

        timer = loop.call_later(max(0, timeout_ms) / 1000.0, _on_timeout)
        remove_cancel = cancel.add_callback(lambda reason: _settle_exception(settled, reason))
        try:
            if _TRACE:
                logger.debug("%s -> %s", self.endpoint, request)
            await self._send_text(request)
            text = await settled
        except Exception as exc:
            self._report(False, name, request, str(exc))
            raise
        finally:
            timer.cancel()
            remove_cancel()
            if self._owners.get(name) is settled:
                del self._owners[name]
            if settled.done() and not settled.cancelled():
                settled.exception()

        try:
            reply = ReplyEnvelope.from_text(text)
            value = reply.decoded_value() if reply.ok else None
        except ValueError as exc:
            error = DspProtocolError(f"{self.endpoint} reply for {name} could not be decoded: {exc}")
            self._report(False, name, request, str(error))
            raise error from exc

        if not reply.ok:
            message = reply.error_message()
            self._report(False, name, request, message)
            raise DspCommandError(name, message)

        self._report(True, name, request, value)
        return value

    def dispatch(self, text: str | bytes) -> bool:
        """Route one inbound frame to its owner; returns False when dropped."""

        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("%s: dropping non UTF-8 frame", self.endpoint)
                return False
        name = peek_command_name(text)
        if name is None:
            logger.debug("%s: dropping unreadable frame", self.endpoint)
            return False
        owner = self._owners.get(name)
        if owner is None or owner.done():
            logger.debug("%s: dropping reply for %s with no waiting request", self.endpoint, name)
            return False
        if _TRACE:
            logger.debug("%s <- %s", self.endpoint, text)
        owner.set_result(text)
        return True

    def fail_all(self, exc: BaseException) -> None:
        for owner in list(self._owners.values()):
            _settle_exception(owner, exc)

    def _report(self, ok: bool, command: str, request: str, response: Any) -> None:
        observer = self.observer
        if observer is None:
            return
        event = DspEvent(
            timestamp_ms=int(time.time() * 1000),
            endpoint=self.endpoint,
            command=command,
            request=request,
            response=response,
            ok=ok,
        )
        try:
            observer(event)
        except Exception:
            logger.debug("%s observer callback failed", self.endpoint, exc_info=True)


def _settle_exception(future: "asyncio.Future[Any]", exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)
