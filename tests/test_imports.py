from __future__ import annotations

import compileall
import importlib
from pathlib import Path


def test_compileall_src() -> None:
    src = Path(__file__).resolve().parents[1] / "src"
    ok = compileall.compile_dir(str(src), quiet=1)
    assert ok


def test_import_packages() -> None:
    importlib.import_module("night")
    importlib.import_module("night.cli")
    importlib.import_module("night.config")
    importlib.import_module("night.pinning")
    importlib.import_module("night.session")
    importlib.import_module("night.wake")
    importlib.import_module("night.system.brightness")
    importlib.import_module("night.system.caffeinate")
    importlib.import_module("night.system.helper")
