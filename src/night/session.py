from __future__ import annotations

import asyncio
import enum
import logging
import signal
import sys
from collections.abc import Awaitable, Callable, Iterator
from contextlib import suppress
from dataclasses import dataclass
from typing import TextIO

from night.config import Options, Settings
from night.pinning import PinningTimer
from night.system.brightness import BrightnessClient, Displays, capture_displays
from night.system.caffeinate import Caffeinate, CaffeinateError
from night.system.helper import BrightnessHelper
from night.wake import (
    WAKE_SIGNALS,
    KeyPress,
    WakeOutcome,
    ensure_interactive,
    wait_for_wake,
)

logger = logging.getLogger(__name__)


class UnsupportedPlatformError(RuntimeError):
    pass


class RestoreError(RuntimeError):
    def __init__(self, messages: list[str]):
        self.messages = list(messages)
        super().__init__(" | ".join(self.messages))


class Phase(enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    DIMMING = "dimming"
    WAITING = "waiting"
    RESTORING = "restoring"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class KeyboardState:
    brightness: float
    auto_brightness: bool


@dataclass
class SessionState:
    displays: Displays | None = None
    keyboard: KeyboardState | None = None
    display_dimmed: bool = False
    keyboard_dimmed: bool = False
    keyboard_auto_changed: bool = False
    caffeinate: Caffeinate | None = None


Compensation = tuple[str, Callable[[], Awaitable[None]]]


def _announce(message: str) -> None:
    print(message, flush=True)


class NightSession:
    """Capture, dim, wait for a wake trigger, then put everything back.

    Restoration runs for every resource that was actually changed, however the
    dimmed phase ended, and one failed step never prevents the next one.
    """

    def __init__(
        self,
        options: Options,
        client: BrightnessClient,
        wait_for_wake: Callable[[], Awaitable[WakeOutcome]],
        caffeinate: Caffeinate | None = None,
        pin_interval: float = 2.0,
        pin_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        announce: Callable[[str], None] = _announce,
    ):
        self.options = options
        self._client = client
        self._wait_for_wake = wait_for_wake
        self._caffeinate = caffeinate
        self._pin_interval = pin_interval
        self._pin_sleep = pin_sleep
        self._announce = announce
        self._pinning: PinningTimer | None = None
        self.phase = Phase.IDLE
        self.state = SessionState()

    def _enter(self, phase: Phase) -> None:
        logger.debug("session: %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    async def run(self) -> WakeOutcome:
        self.options.validate()
        state = self.state = SessionState()

        self._enter(Phase.CAPTURING)
        try:
            await self._capture(state)
        except BaseException:
            self._enter(Phase.FAILED)
            raise

        primary: BaseException | None = None
        outcome: WakeOutcome = KeyPress()
        try:
            self._enter(Phase.DIMMING)
            await self._dim(state)
            self._enter(Phase.WAITING)
            self._announce("Night mode active. Press any key to restore and exit.")
            outcome = await self._wait(state)
        except BaseException as e:
            primary = e
            raise
        finally:
            self._enter(Phase.RESTORING)
            errors = await self._restore_to_completion(state)
            self._enter(Phase.FAILED if errors or primary else Phase.DONE)
            if errors:
                raise RestoreError(errors) from primary
        return outcome

    async def _capture(self, state: SessionState) -> None:
        if self.options.display:
            state.displays = await capture_displays(self._client)
        if self.options.keyboard:
            state.keyboard = KeyboardState(
                brightness=await self._client.get_keyboard_brightness(),
                auto_brightness=await self._client.get_keyboard_auto(),
            )
            logger.info("captured keyboard state: %s", state.keyboard)

    async def _dim(self, state: SessionState) -> None:
        if self.options.caffeinate and self._caffeinate is not None:
            state.caffeinate = self._caffeinate
            pid = await self._caffeinate.start()
            self._announce(f"{self._caffeinate.label} started (pid {pid})")

        if state.keyboard is not None:
            if state.keyboard.auto_brightness:
                await self._client.set_keyboard_auto(False)
                state.keyboard_auto_changed = True
            await self._client.set_keyboard_brightness(0.0)
            state.keyboard_dimmed = True

        if state.displays is not None:
            displays = state.displays
            await displays.set_all(0.0)
            state.display_dimmed = True
            self._pinning = PinningTimer(
                lambda: displays.set_all(0.0), self._pin_interval, sleep=self._pin_sleep
            )
            self._pinning.start()

    async def _wait(self, state: SessionState) -> WakeOutcome:
        if state.caffeinate is None:
            return await self._wait_for_wake()

        wake = asyncio.ensure_future(self._wait_for_wake())
        watch = asyncio.ensure_future(state.caffeinate.watch())
        try:
            done, _ = await asyncio.wait({wake, watch}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (wake, watch):
                if not task.done():
                    task.cancel()
                    with suppress(asyncio.CancelledError):
                        await task

        if wake in done:
            return wake.result()
        watch.result()
        raise CaffeinateError(f"{state.caffeinate.label} stopped while waiting.")

    def _compensations(self, state: SessionState) -> Iterator[Compensation]:
        client = self._client

        if state.display_dimmed and state.displays is not None:
            displays = state.displays
            for entry in displays.entries:
                yield (
                    f"display restore failed for {entry.id}",
                    lambda entry=entry: displays.restore(entry),
                )

        if state.keyboard_dimmed and state.keyboard is not None:
            value = state.keyboard.brightness
            yield "keyboard restore failed", lambda: client.set_keyboard_brightness(value)

        if state.keyboard_auto_changed and state.keyboard is not None:
            enabled = state.keyboard.auto_brightness
            yield "keyboard auto restore failed", lambda: client.set_keyboard_auto(enabled)

        if state.caffeinate is not None:
            yield "failed to stop caffeinate", state.caffeinate.stop

    async def _restore_to_completion(self, state: SessionState) -> list[str]:
        """Run every restore step even if the session is interrupted meanwhile.

        Termination signals are held off while restoring, and a cancellation
        is only re-raised once the restore has finished.
        """

        loop = asyncio.get_running_loop()
        held: dict[signal.Signals, object] = {}
        for sig in WAKE_SIGNALS:
            previous = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, self._hold_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            held[sig] = previous

        task = asyncio.ensure_future(self._restore(state))
        cancelled = False
        try:
            while not task.done():
                try:
                    await asyncio.shield(task)
                except asyncio.CancelledError:
                    cancelled = True
        finally:
            for sig, previous in held.items():
                loop.remove_signal_handler(sig)
                if previous is not None:
                    signal.signal(sig, previous)

        errors = task.result()
        if cancelled:
            if errors:
                logger.error("restore finished with errors: %s", " | ".join(errors))
            raise asyncio.CancelledError
        return errors

    def _hold_signal(self, sig: signal.Signals) -> None:
        logger.warning("%s received while restoring, finishing restore first", sig.name)

    async def _restore(self, state: SessionState) -> list[str]:
        if self._pinning is not None:
            await self._pinning.stop()
            self._pinning = None

        errors: list[str] = []
        for label, action in self._compensations(state):
            try:
                await action()
            except Exception as e:
                logger.warning("%s: %s", label, e)
                errors.append(f"{label}: {e}")
        return errors


async def run_night(
    options: Options,
    settings: Settings,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> WakeOutcome:
    """Check preconditions, wire up the real collaborators and run one session."""

    options.validate()
    if sys.platform != "darwin":
        raise UnsupportedPlatformError("night currently supports macOS only.")

    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    ensure_interactive(stdin, stdout)

    client = BrightnessClient(BrightnessHelper(settings.helper_command))
    caffeinate = None
    if options.caffeinate:
        caffeinate = Caffeinate(
            settings.caffeinate_command,
            kill_after=settings.kill_after_seconds,
            give_up_after=settings.give_up_after_seconds,
            startup_probe=settings.startup_probe_seconds,
        )

    session = NightSession(
        options,
        client,
        wait_for_wake=lambda: wait_for_wake(stdin, stdout),
        caffeinate=caffeinate,
        pin_interval=settings.pin_interval_seconds,
    )
    return await session.run()
