from __future__ import annotations

import asyncio
import sys

import pytest

from night.system.helper import BrightnessHelper, HelperError


def test_helper_returns_stripped_stdout() -> None:
    helper = BrightnessHelper(
        [sys.executable, "-c", "import sys; print(' '.join(sys.argv[1:]))"]
    )
    assert asyncio.run(helper.run("display-one-set", "A", "0.500000")) == (
        "display-one-set A 0.500000"
    )


def test_helper_non_zero_exit_carries_stderr() -> None:
    helper = BrightnessHelper(
        [sys.executable, "-c", "import sys; sys.stderr.write('no backlight'); sys.exit(3)"]
    )
    with pytest.raises(HelperError) as exc:
        asyncio.run(helper.run("keyboard-get"))
    assert "exited with code 3" in str(exc.value)
    assert "no backlight" in str(exc.value)
    assert '"keyboard-get"' in str(exc.value)


def test_helper_missing_binary() -> None:
    helper = BrightnessHelper(["night-brightness-does-not-exist"])
    with pytest.raises(HelperError, match="command not found"):
        asyncio.run(helper.run("display-get"))
