from __future__ import annotations

import abc
import asyncio
import logging
import os
import signal
import termios
import tty
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TextIO, Union

logger = logging.getLogger(__name__)

WAKE_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class TerminalError(RuntimeError):
    pass


@dataclass(frozen=True)
class KeyPress:
    pass


@dataclass(frozen=True)
class Signal:
    name: str


WakeOutcome = Union[KeyPress, Signal]


class Source(abc.ABC):
    """One event that can end the wait. ``fire`` must be called at most once."""

    @abc.abstractmethod
    def attach(self, loop: asyncio.AbstractEventLoop, fire: Callable[[WakeOutcome], None]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def detach(self, loop: asyncio.AbstractEventLoop) -> None:
        raise NotImplementedError


class KeypressSource(Source):
    """Resolve on the first byte readable from a terminal in raw mode."""

    def __init__(self, stdin: TextIO):
        self._fd = stdin.fileno()
        self._saved: list | None = None

    def attach(self, loop: asyncio.AbstractEventLoop, fire: Callable[[WakeOutcome], None]) -> None:
        self._saved = termios.tcgetattr(self._fd)
        tty.setraw(self._fd)

        def on_readable() -> None:
            try:
                os.read(self._fd, 1)
            except OSError as e:
                # A hung-up terminal can no longer deliver keys; wake anyway.
                logger.warning("terminal read failed: %s", e)
            fire(KeyPress())

        loop.add_reader(self._fd, on_readable)

    def detach(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.remove_reader(self._fd)
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
            self._saved = None


class SignalSource(Source):
    def __init__(self, signals: Iterable[signal.Signals] = WAKE_SIGNALS):
        self._signals = list(signals)
        self._installed: dict[signal.Signals, object] = {}

    def attach(self, loop: asyncio.AbstractEventLoop, fire: Callable[[WakeOutcome], None]) -> None:
        for sig in self._signals:
            previous = signal.getsignal(sig)
            loop.add_signal_handler(sig, fire, Signal(sig.name))
            self._installed[sig] = previous

    def detach(self, loop: asyncio.AbstractEventLoop) -> None:
        while self._installed:
            sig, previous = self._installed.popitem()
            loop.remove_signal_handler(sig)
            if previous is not None:
                signal.signal(sig, previous)


async def first_of(sources: Iterable[Source]) -> WakeOutcome:
    """Wait for whichever source fires first, then detach all of them."""

    loop = asyncio.get_running_loop()
    result: asyncio.Future[WakeOutcome] = loop.create_future()

    def fire(outcome: WakeOutcome) -> None:
        if not result.done():
            result.set_result(outcome)

    attached: list[Source] = []
    try:
        for source in sources:
            # Detach must also undo a half-finished attach.
            attached.append(source)
            source.attach(loop, fire)
        return await result
    finally:
        errors: list[BaseException] = []
        for source in reversed(attached):
            try:
                source.detach(loop)
            except Exception as e:
                errors.append(e)
        if errors:
            raise errors[0]


def ensure_interactive(stdin: TextIO, stdout: TextIO) -> None:
    if not (stdin.isatty() and stdout.isatty()):
        raise TerminalError("night must be run from an interactive terminal (TTY).")


async def wait_for_wake(stdin: TextIO, stdout: TextIO) -> WakeOutcome:
    """Block until a key is pressed or SIGINT/SIGTERM/SIGHUP arrives."""

    ensure_interactive(stdin, stdout)
    outcome = await first_of([KeypressSource(stdin), SignalSource()])
    logger.info("woken by %s", outcome)
    return outcome
