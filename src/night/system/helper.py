from __future__ import annotations

import asyncio
import json
import logging
import os

logger = logging.getLogger(__name__)


class HelperError(RuntimeError):
    pass


def command_for_error(cmd: list[str]) -> str:
    return " ".join(json.dumps(part) for part in cmd)


class BrightnessHelper:
    """Run the privileged brightness helper, one request at a time.

    Every request is a fresh process: the arguments are the command, stdout is
    the reply and a non-zero exit means failure with a diagnostic on stderr.
    """

    def __init__(self, command: list[str]):
        self._command = list(command)
        self._lock = asyncio.Lock()

    async def run(self, *args: str) -> str:
        cmd = self._command + list(args)
        async with self._lock:
            logger.debug("helper: %s", command_for_error(cmd))
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=os.environ.copy(),
                )
            except FileNotFoundError as e:
                raise HelperError(
                    f"{self._command[0]} command not found. "
                    "Set helper.command in the config file to the brightness helper."
                ) from e
            except OSError as e:
                raise HelperError(f"Failed to start {command_for_error(cmd)}: {e}") from e

            out, err = await proc.communicate()

        stdout = out.decode("utf-8", errors="replace")
        stderr = err.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            suffix = f": {stderr}" if stderr else ""
            raise HelperError(
                f"{command_for_error(cmd)} exited with code {proc.returncode}{suffix}"
            )
        return stdout.strip()
