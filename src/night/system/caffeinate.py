from __future__ import annotations

import asyncio
import enum
import logging
import signal
from contextlib import suppress

logger = logging.getLogger(__name__)


class CaffeinateError(RuntimeError):
    pass


class State(enum.Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Caffeinate:
    """Keep a ``caffeinate`` process alive for the length of a session."""

    def __init__(
        self,
        command: list[str],
        kill_after: float = 1.5,
        give_up_after: float = 2.5,
        startup_probe: float = 0.1,
    ):
        self._command = list(command)
        self._kill_after = kill_after
        self._give_up_after = give_up_after
        self._startup_probe = startup_probe
        self._proc: asyncio.subprocess.Process | None = None
        self.state = State.NOT_STARTED

    @property
    def label(self) -> str:
        return " ".join(self._command)

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    async def start(self) -> int:
        if self.state is not State.NOT_STARTED:
            raise CaffeinateError(f"{self.label} was already started")

        self.state = State.STARTING
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            self.state = State.STOPPED
            raise CaffeinateError(f"{self._command[0]} command not found.") from e
        except OSError as e:
            self.state = State.STOPPED
            raise CaffeinateError(f"Failed to start {self.label}: {e}") from e

        # A process that cannot hold its assertion exits right away.
        try:
            code = await asyncio.wait_for(self._proc.wait(), timeout=self._startup_probe)
        except asyncio.TimeoutError:
            pass
        else:
            self.state = State.STOPPED
            raise CaffeinateError(f"{self._command[0]} exited immediately (code={code}).")

        self.state = State.RUNNING
        logger.info("%s running (pid %d)", self.label, self._proc.pid)
        return self._proc.pid

    async def watch(self) -> None:
        """Return only if the process is stopped on request, raise if it dies."""

        if self._proc is None:
            return
        code = await self._proc.wait()
        if self.state is State.RUNNING:
            self.state = State.STOPPED
            raise CaffeinateError(f"{self._command[0]} exited unexpectedly (code={code}).")

    async def stop(self) -> None:
        """SIGTERM, then SIGKILL after ``kill_after``; give up after ``give_up_after``."""

        proc = self._proc
        if proc is None or self.state in (State.STOPPED, State.NOT_STARTED):
            self.state = State.STOPPED
            return
        if proc.returncode is not None:
            self.state = State.STOPPED
            return

        self.state = State.STOPPING
        try:
            proc.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            self.state = State.STOPPED
            return

        try:
            await asyncio.wait_for(proc.wait(), timeout=self._kill_after)
        except asyncio.TimeoutError:
            logger.warning("%s ignored SIGTERM, sending SIGKILL", self.label)
            with suppress(ProcessLookupError):
                proc.kill()
            try:
                await asyncio.wait_for(
                    proc.wait(), timeout=max(0.0, self._give_up_after - self._kill_after)
                )
            except asyncio.TimeoutError:
                logger.warning("%s (pid %d) did not exit, giving up", self.label, proc.pid)

        self.state = State.STOPPED
