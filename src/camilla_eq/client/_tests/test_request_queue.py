import asyncio

import pytest

from camilla_eq.client.errors import DspCancelledError
from camilla_eq.client.request_queue import CancelToken, RequestQueue


def test_operations_run_fifo_one_at_a_time() -> None:
    async def runner() -> None:
        queue = RequestQueue("control")
        log: list[str] = []
        running = 0
        peak = 0

        def make(label: str, delay: float):
            async def op(token: CancelToken) -> str:
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                log.append(f"start {label}")
                await asyncio.sleep(delay)
                log.append(f"end {label}")
                running -= 1
                return label

            return op

        futures = [queue.enqueue(make("a", 0.02)), queue.enqueue(make("b", 0.0)), queue.enqueue(make("c", 0.01))]
        assert queue.pending_count == 3
        results = await asyncio.gather(*futures)

        assert results == ["a", "b", "c"]
        assert peak == 1
        assert log == ["start a", "end a", "start b", "end b", "start c", "end c"]
        assert not queue.busy

    asyncio.run(runner())


def test_failure_does_not_block_next_operation() -> None:
    async def runner() -> None:
        queue = RequestQueue("control")

        async def boom(token: CancelToken) -> None:
            raise RuntimeError("bad")

        async def fine(token: CancelToken) -> int:
            return 7

        first = queue.enqueue(boom)
        second = queue.enqueue(fine)
        with pytest.raises(RuntimeError, match="bad"):
            await first
        assert await second == 7

    asyncio.run(runner())


def test_cancel_all_rejects_active_and_queued_then_queue_is_reusable() -> None:
    async def runner() -> None:
        queue = RequestQueue("control")
        started = asyncio.Event()
        seen_reason: list[BaseException] = []
        second_ran = False

        async def slow(token: CancelToken) -> None:
            started.set()
            seen_reason.append(await token.wait())

        async def never(token: CancelToken) -> None:
            nonlocal second_ran
            second_ran = True

        active = queue.enqueue(slow)
        queued = queue.enqueue(never)
        await started.wait()

        reason = DspCancelledError("Disconnected")
        queue.cancel_all(reason)

        assert active.done() and active.exception() is reason
        assert queued.done() and queued.exception() is reason
        await asyncio.sleep(0.01)
        assert seen_reason == [reason]
        assert second_ran is False

        async def after(token: CancelToken) -> str:
            return "ok"

        assert await queue.enqueue(after) == "ok"

    asyncio.run(runner())


def test_caller_cancellation_fires_token_of_running_operation() -> None:
    async def runner() -> None:
        queue = RequestQueue("spectrum")
        started = asyncio.Event()
        reasons: list[BaseException] = []

        async def op(token: CancelToken) -> None:
            started.set()
            reasons.append(await token.wait())

        future = queue.enqueue(op)
        await started.wait()
        future.cancel()
        await asyncio.sleep(0.01)

        assert len(reasons) == 1
        assert isinstance(reasons[0], DspCancelledError)
        assert not queue.busy

    asyncio.run(runner())


def test_cancelled_before_start_is_skipped() -> None:
    async def runner() -> None:
        queue = RequestQueue("control")
        gate = asyncio.Event()
        ran: list[str] = []

        async def blocker(token: CancelToken) -> None:
            await gate.wait()

        async def skipped(token: CancelToken) -> None:
            ran.append("skipped")

        first = queue.enqueue(blocker)
        second = queue.enqueue(skipped)
        second.cancel()
        gate.set()
        await first
        await asyncio.sleep(0.01)
        assert ran == []

    asyncio.run(runner())


def test_cancel_token_first_reason_wins() -> None:
    token = CancelToken()
    calls: list[BaseException] = []
    remove = token.add_callback(calls.append)
    first = DspCancelledError("first")

    assert token.cancel(first) is True
    assert token.cancel(DspCancelledError("second")) is False
    assert token.reason is first
    assert calls == [first]
    remove()

    late: list[BaseException] = []
    token.add_callback(late.append)
    assert late == [first]
