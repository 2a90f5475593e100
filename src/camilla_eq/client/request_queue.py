"""Per-socket request serialization with cooperative cancellation.

Each endpoint owns one :class:`RequestQueue`.  Operations are coroutine
factories that receive a :class:`CancelToken`; a single worker task runs them
strictly one at a time in FIFO order, so the next operation's wire write never
happens before the previous operation has settled.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Generic, List, Optional, TypeVar

from camilla_eq.client.errors import DspCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CancelCallback = Callable[[BaseException], None]
Operation = Callable[["CancelToken"], Awaitable[T]]


class CancelToken:
    """One-shot cancellation signal handed to a running operation.

    The first call to :meth:`cancel` wins; its reason is what the operation
    should raise.  Listeners registered with :meth:`add_callback` run
    synchronously inside :meth:`cancel`.
    """

    def __init__(self) -> None:
        self._reason: BaseException | None = None
        self._callbacks: List[CancelCallback] = []

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> BaseException | None:
        return self._reason

    def cancel(self, reason: BaseException | None = None) -> bool:
        if self._reason is not None:
            return False
        self._reason = reason if reason is not None else DspCancelledError("Request cancelled")
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(self._reason)
            except Exception:
                logger.debug("CancelToken: listener failed", exc_info=True)
        return True

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""

        if self._reason is not None:
            callback(self._reason)
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return _remove

    async def wait(self) -> BaseException:
        if self._reason is not None:
            return self._reason
        waiter: asyncio.Future[BaseException] = asyncio.get_running_loop().create_future()

        def _wake(reason: BaseException) -> None:
            if not waiter.done():
                waiter.set_result(reason)

        remove = self.add_callback(_wake)
        try:
            return await waiter
        finally:
            remove()


@dataclass
class _QueuedOperation(Generic[T]):
    operation: Operation
    future: "asyncio.Future[T]"
    token: CancelToken = field(default_factory=CancelToken)


class RequestQueue:
    """Run enqueued operations one at a time for a single endpoint."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self._queue: Deque[_QueuedOperation[Any]] = deque()
        self._active: Optional[_QueuedOperation[Any]] = None
        self._worker: Optional[asyncio.Task[None]] = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def enqueue(self, operation: Operation) -> "asyncio.Future[Any]":
        """Queue *operation* and return a future for its outcome."""

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        item = _QueuedOperation(operation=operation, future=future)
        future.add_done_callback(lambda fut, item=item: self._on_future_done(item, fut))
        self._queue.append(item)
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain(), name=f"camilla-eq-{self.endpoint}-queue")
        return future

    def cancel_all(self, reason: BaseException) -> None:
        """Abort the running operation and reject everything still queued."""

        active = self._active
        if active is not None:
            active.token.cancel(reason)
            _reject(active.future, reason)
        dropped = 0
        while self._queue:
            item = self._queue.popleft()
            item.token.cancel(reason)
            _reject(item.future, reason)
            dropped += 1
        if active is not None or dropped:
            logger.debug(
                "%s queue cancelled: active=%s dropped=%d reason=%s",
                self.endpoint,
                active is not None,
                dropped,
                reason,
            )

    async def _drain(self) -> None:
        while self._queue:
            item = self._queue.popleft()
            if item.future.done():
                continue
            self._active = item
            try:
                result = await item.operation(item.token)
            except asyncio.CancelledError:
                if not item.future.done():
                    item.future.cancel()
                raise
            except Exception as exc:
                _reject(item.future, exc)
            else:
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self._active = None

    def _on_future_done(self, item: _QueuedOperation[Any], future: "asyncio.Future[Any]") -> None:
        if future.cancelled() and item is self._active:
            item.token.cancel(DspCancelledError(f"{self.endpoint} request cancelled by caller"))


def _reject(future: "asyncio.Future[Any]", exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)
