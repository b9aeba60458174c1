"""Shared fixtures: real module directories written under tmp_path."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from modcore.config import Config
from modcore.registry import Registry


# === Hook file templates ===

# Every hook appends its name to calls.log next to the hooks file.
RECORDING_HOOKS = """\
from pathlib import Path

_LOG = Path(__file__).with_name("calls.log")


def _record(entry):
    with _LOG.open("a", encoding="utf-8") as f:
        f.write(entry + "\\n")


def on_install():
    _record("on_install")


def on_upgrade(from_version):
    _record("on_upgrade:" + from_version)


def on_enable():
    _record("on_enable")


def on_disable():
    _record("on_disable")


def before_setup():
    _record("before_setup")


def after_setup():
    _record("after_setup")
"""


# === Fixtures ===


@pytest.fixture
def recording_hooks() -> str:
    return RECORDING_HOOKS


@pytest.fixture
def read_calls() -> Callable[[Path], list[str]]:
    """Hook names recorded by RECORDING_HOOKS for one module directory."""

    def _read(module_dir: Path) -> list[str]:
        log = module_dir / "calls.log"
        if not log.exists():
            return []
        return log.read_text(encoding="utf-8").splitlines()

    return _read


@pytest.fixture
def modules_dir(tmp_path: Path) -> Path:
    path = tmp_path / "modules"
    path.mkdir()
    return path


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "var" / "cache" / "modules.json"


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "var" / "state" / "modules.json"


@pytest.fixture
def write_module(modules_dir: Path) -> Callable[..., Path]:
    """Factory writing ``modules/<dir>/module.yaml`` (and optionally hooks.py).

    Keyword arguments become descriptor fields; ``version`` defaults to 1.0.0.
    """

    def _write(module_id: str, hooks: str | None = None, **fields: Any) -> Path:
        module_dir = modules_dir / module_id
        module_dir.mkdir(exist_ok=True)
        manifest = {"version": "1.0.0", **fields}
        (module_dir / "module.yaml").write_text(yaml.safe_dump(manifest, sort_keys=False), encoding="utf-8")
        if hooks is not None:
            (module_dir / "hooks.py").write_text(textwrap.dedent(hooks), encoding="utf-8")
        return module_dir

    return _write


@pytest.fixture
def make_registry(modules_dir: Path, cache_path: Path) -> Callable[..., Registry]:
    def _make(**kwargs: Any) -> Registry:
        return Registry(modules_dir=modules_dir, cache_path=cache_path, **kwargs)

    return _make


@pytest.fixture
def config(modules_dir: Path, cache_path: Path, state_path: Path) -> Config:
    """Config pointing every path setting into tmp_path."""
    return Config(
        {
            "modules": {"root": str(modules_dir)},
            "cache": {"registry": str(cache_path), "state": str(state_path)},
        }
    )
