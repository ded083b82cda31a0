from __future__ import annotations

import abc
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Protocol

from night.system.helper import HelperError

logger = logging.getLogger(__name__)

BUILTIN_DISPLAY_ID = "builtin"

# Hardware replies this close to the range are rounding noise, not errors.
_RANGE_SLACK = 1e-6


class Runner(Protocol):
    async def run(self, *args: str) -> str: ...


@dataclass(frozen=True)
class DisplaySnapshotEntry:
    id: str
    value: float


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def format_unit_value(value: float) -> str:
    return f"{clamp01(value):.6f}"


def parse_unit_value(raw: Any, label: str) -> float:
    text = str(raw).strip()
    try:
        value = float(text)
    except ValueError as e:
        raise HelperError(f"Could not parse {label} from '{text}'") from e
    if not math.isfinite(value):
        raise HelperError(f"Could not parse {label} from '{text}'")
    if value < -_RANGE_SLACK or value > 1.0 + _RANGE_SLACK:
        raise HelperError(f"{label} out of range [0,1]: {value}")
    return clamp01(value)


def parse_display_snapshot(raw: str) -> list[DisplaySnapshotEntry]:
    """Parse the ``display-all-get`` reply.

    An empty array is valid and means no display could be enumerated.
    """

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HelperError(f"Could not parse display snapshot JSON: {e}") from e
    if not isinstance(parsed, list):
        raise HelperError("Display snapshot is not a JSON array.")

    entries: list[DisplaySnapshotEntry] = []
    for item in parsed:
        if not isinstance(item, dict):
            raise HelperError("Display snapshot contains a non-object entry.")
        display_id = str(item.get("id") or "").strip()
        if not display_id:
            raise HelperError("Display snapshot contains entry with missing id.")
        value = parse_unit_value(item.get("value"), f"display brightness for {display_id}")
        entries.append(DisplaySnapshotEntry(id=display_id, value=value))
    return entries


class BrightnessClient:
    """Typed calls into the brightness helper."""

    def __init__(self, runner: Runner):
        self._runner = runner

    async def get_display_snapshot(self) -> list[DisplaySnapshotEntry]:
        return parse_display_snapshot(await self._runner.run("display-all-get"))

    async def set_all_displays(self, value: float) -> None:
        await self._runner.run("display-all-set", format_unit_value(value))

    async def set_display(self, display_id: str, value: float) -> None:
        await self._runner.run("display-one-set", display_id, format_unit_value(value))

    async def get_display_legacy(self) -> float:
        return parse_unit_value(await self._runner.run("display-get"), "display brightness")

    async def set_display_legacy(self, value: float) -> None:
        await self._runner.run("display-set", format_unit_value(value))

    async def get_keyboard_brightness(self) -> float:
        return parse_unit_value(await self._runner.run("keyboard-get"), "keyboard brightness")

    async def set_keyboard_brightness(self, value: float) -> None:
        await self._runner.run("keyboard-set", format_unit_value(value))

    async def get_keyboard_auto(self) -> bool:
        raw = (await self._runner.run("keyboard-auto-get")).strip()
        if raw == "0":
            return False
        if raw == "1":
            return True
        raise HelperError(f"Could not parse keyboard auto-brightness state from '{raw}'")

    async def set_keyboard_auto(self, enabled: bool) -> None:
        await self._runner.run("keyboard-auto-set", "1" if enabled else "0")


class Displays(abc.ABC):
    """The displays captured at session start and how to drive them."""

    def __init__(self, client: BrightnessClient, entries: list[DisplaySnapshotEntry]):
        self._client = client
        self.entries = list(entries)

    @abc.abstractmethod
    async def set_all(self, value: float) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def restore(self, entry: DisplaySnapshotEntry) -> None:
        raise NotImplementedError


class MultiDisplays(Displays):
    async def set_all(self, value: float) -> None:
        await self._client.set_all_displays(value)

    async def restore(self, entry: DisplaySnapshotEntry) -> None:
        await self._client.set_display(entry.id, entry.value)


class BuiltinDisplay(Displays):
    """Single built-in panel, used when enumeration finds nothing."""

    async def set_all(self, value: float) -> None:
        await self._client.set_display_legacy(value)

    async def restore(self, entry: DisplaySnapshotEntry) -> None:
        await self._client.set_display_legacy(entry.value)


async def capture_displays(client: BrightnessClient) -> Displays:
    """Snapshot display brightness and pick the strategy that can drive it.

    A non-empty enumeration is authoritative.
    """

    entries = await client.get_display_snapshot()
    if entries:
        logger.info("captured %d display(s): %s", len(entries), entries)
        return MultiDisplays(client, entries)

    value = await client.get_display_legacy()
    logger.info("no displays enumerated, falling back to built-in display (%.6f)", value)
    return BuiltinDisplay(client, [DisplaySnapshotEntry(id=BUILTIN_DISPLAY_ID, value=value)])
