from __future__ import annotations

import asyncio

from night.pinning import PinningTimer


class FakeClock:
    def __init__(self) -> None:
        self.sleepers: list[asyncio.Future] = []

    async def sleep(self, _delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self.sleepers.append(fut)
        await fut

    def advance(self) -> None:
        for fut in self.sleepers:
            if not fut.done():
                fut.set_result(None)
        self.sleepers.clear()


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_ticks_reapply_action() -> None:
    calls: list[int] = []

    async def pin() -> None:
        calls.append(1)

    async def go() -> None:
        clock = FakeClock()
        timer = PinningTimer(pin, interval=2.0, sleep=clock.sleep)
        timer.start()
        for _ in range(3):
            await _settle()
            clock.advance()
        await _settle()
        await timer.stop()

    asyncio.run(go())
    assert len(calls) == 3


def test_no_tick_after_stop_even_if_due() -> None:
    calls: list[int] = []

    async def pin() -> None:
        calls.append(1)

    async def go() -> None:
        clock = FakeClock()
        timer = PinningTimer(pin, interval=2.0, sleep=clock.sleep)
        timer.start()
        await _settle()
        clock.advance()
        await _settle()
        assert len(calls) == 1

        # Next tick comes due at the same instant the timer is stopped.
        clock.advance()
        await timer.stop()
        await _settle()
        clock.advance()
        await _settle()
        assert not timer.running

    asyncio.run(go())
    assert len(calls) == 1


def test_overlapping_tick_is_skipped() -> None:
    release = None
    started: list[int] = []

    async def slow_pin() -> None:
        started.append(1)
        await release

    async def go() -> PinningTimer:
        nonlocal release
        release = asyncio.get_running_loop().create_future()
        clock = FakeClock()
        timer = PinningTimer(slow_pin, interval=2.0, sleep=clock.sleep)
        timer.start()
        for _ in range(3):
            await _settle()
            clock.advance()
        await _settle()
        release.set_result(None)
        await timer.stop()
        return timer

    timer = asyncio.run(go())
    assert len(started) == 1
    assert timer.skipped == 2


def test_failures_are_swallowed() -> None:
    calls: list[int] = []

    async def broken() -> None:
        calls.append(1)
        raise RuntimeError("backlight busy")

    async def go() -> None:
        clock = FakeClock()
        timer = PinningTimer(broken, interval=2.0, sleep=clock.sleep)
        timer.start()
        for _ in range(2):
            await _settle()
            clock.advance()
        await _settle()
        assert timer.running
        await timer.stop()

    asyncio.run(go())
    assert len(calls) == 2
