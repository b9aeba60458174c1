"""Lifecycle hooks: install/upgrade tracking and optional per-module callbacks."""

from __future__ import annotations

import importlib.util
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from modcore.config import Config
from modcore.errors import VersionParseError
from modcore.registry import JsonFileStore, ModuleDescriptor, Registry
from modcore.version import parse_version

logger = logging.getLogger(__name__)

__all__ = ["HOOK_NAMES", "HookProvider", "HookRunner", "SetupResult", "load_hooks"]

HOOK_NAMES = ("on_install", "on_upgrade", "on_enable", "on_disable", "before_setup", "after_setup")


class HookProvider:
    """Base class for module lifecycle hooks with default no-op implementations.

    A module's hooks file may define a subclass named ``Hooks``, or plain
    module-level functions with the same names. Only the hooks a module
    defines are run.
    """

    def on_install(self) -> None:
        """Called the first time the module is seen."""

    def on_upgrade(self, from_version: str) -> None:
        """Called when the declared version is newer than the installed one."""

    def on_enable(self) -> None:
        """Called after the module is enabled."""

    def on_disable(self) -> None:
        """Called after the module is disabled."""

    def before_setup(self) -> None:
        """Called on every setup pass, after any install or upgrade hook."""

    def after_setup(self) -> None:
        """Called once every module has run ``before_setup``."""


@dataclass
class SetupResult:
    """Module ids whose hooks ran successfully in one setup pass, in registry order.

    A module without an install or upgrade hook, or whose hook failed, still
    has its version recorded but is not listed.
    """

    installed: list[str] = field(default_factory=list)
    upgraded: list[str] = field(default_factory=list)
    before_setup: list[str] = field(default_factory=list)


def _import_hooks_file(file_path: Path, module_id: str) -> Any:
    """Dynamically import a hooks file and return the loaded module object."""
    module_name = f"modcore_hooks_{module_id.replace('.', '_').replace('-', '_')}"
    spec = importlib.util.spec_from_file_location(module_name, str(file_path))
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot create import spec for {file_path}")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def load_hooks(file_path: Path, module_id: str) -> dict[str, Any]:
    """Collect the hook callables a hooks file provides.

    A ``Hooks`` class deriving from :class:`HookProvider` is instantiated and
    only the methods it overrides are returned. Otherwise module-level
    callables named after a hook are used. A file that fails to import, or
    whose ``Hooks`` class cannot be instantiated, provides no hooks.
    """
    if not file_path.is_file():
        return {}
    try:
        loaded = _import_hooks_file(file_path, module_id)
    except Exception as e:
        logger.error("Failed to import hooks for module '%s' from %s: %s", module_id, file_path, e, exc_info=True)
        return {}

    hooks_cls = getattr(loaded, "Hooks", None)
    if inspect.isclass(hooks_cls) and issubclass(hooks_cls, HookProvider):
        try:
            instance = hooks_cls()
        except Exception as e:
            logger.error(
                "Failed to instantiate hooks for module '%s' from %s: %s", module_id, file_path, e, exc_info=True
            )
            return {}
        return {
            name: getattr(instance, name)
            for name in HOOK_NAMES
            if getattr(hooks_cls, name) is not getattr(HookProvider, name)
        }
    if hooks_cls is not None:
        logger.debug(
            "Ignoring 'Hooks' in %s of module '%s': not a HookProvider subclass, using module-level hooks",
            file_path,
            module_id,
        )

    return {name: getattr(loaded, name) for name in HOOK_NAMES if hasattr(loaded, name)}


class HookRunner:
    """Runs lifecycle hooks and persists the installed version of each module."""

    def __init__(
        self,
        registry: Registry,
        config: Config | None = None,
        state_path: str | Path | None = None,
        hooks_file: str | None = None,
    ) -> None:
        """Initialize the HookRunner.

        Args:
            registry: Registry supplying the enabled modules.
            config: Optional Config supplying ``cache.state`` and
                ``modules.hooks_file``.
            state_path: Location of the lifecycle state file.
            hooks_file: Hooks file name inside each module directory.
        """
        if config is None:
            config = Config()

        self._registry = registry
        self._store = JsonFileStore(state_path if state_path is not None else config.path("cache.state"))
        self._hooks_file = hooks_file or config.get("modules.hooks_file", "hooks.py")
        self._installed: dict[str, str] | None = None
        self._hooks: dict[str, dict[str, Any]] = {}

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def state_path(self) -> Path:
        return self._store.path

    # ----- Lifecycle State -----

    def _state(self) -> dict[str, str]:
        if self._installed is None:
            data = self._store.read() or {}
            installed = data.get("installed")
            if not isinstance(installed, dict):
                installed = {}
            self._installed = {str(k): str(v) for k, v in installed.items()}
        return self._installed

    def _save_state(self) -> None:
        self._store.write({"installed": dict(self._state())})

    def installed_version(self, module_id: str) -> str | None:
        return self._state().get(module_id)

    def mark_installed(self, module_id: str, version: str) -> None:
        """Record ``version`` as installed for ``module_id`` and persist it."""
        self._state()[module_id] = version
        self._save_state()

    def needs_install(self, module_id: str) -> bool:
        return self.installed_version(module_id) is None

    def needs_upgrade(self, descriptor: ModuleDescriptor) -> bool:
        """Whether the declared version is strictly newer than the installed one."""
        installed = self.installed_version(descriptor.module_id)
        if installed is None:
            return False
        try:
            return descriptor.version > parse_version(installed)
        except VersionParseError:
            logger.warning(
                "Recorded version '%s' of module '%s' is unparseable, skipping upgrade",
                installed,
                descriptor.module_id,
            )
            return False

    # ----- Setup Passes -----

    def run_setup_hooks(self) -> SetupResult:
        """Install or upgrade every enabled module, then run ``before_setup``.

        Hook failures are logged and never stop the pass. The state file is
        written once at the end.
        """
        result = SetupResult()
        state = self._state()

        for descriptor in self._registry.get_enabled():
            module_id = descriptor.module_id
            version = str(descriptor.version)

            if self.needs_install(module_id):
                if self.run_hook(descriptor, "on_install"):
                    result.installed.append(module_id)
                state[module_id] = version
                logger.info("Module '%s' installed at version %s", module_id, version)
            elif self.needs_upgrade(descriptor):
                from_version = state[module_id]
                if self.run_hook(descriptor, "on_upgrade", from_version):
                    result.upgraded.append(module_id)
                state[module_id] = version
                logger.info("Module '%s' upgraded from %s to %s", module_id, from_version, version)

            if self.run_hook(descriptor, "before_setup"):
                result.before_setup.append(module_id)

        self._save_state()
        return result

    def run_after_setup_hooks(self) -> list[str]:
        """Run ``after_setup`` on every enabled module; returns ids whose hook ran."""
        return [
            descriptor.module_id
            for descriptor in self._registry.get_enabled()
            if self.run_hook(descriptor, "after_setup")
        ]

    def run_enable_hook(self, module_id: str) -> bool:
        descriptor = self._registry.get(module_id)
        if descriptor is None:
            return False
        return self.run_hook(descriptor, "on_enable")

    def run_disable_hook(self, module_id: str) -> bool:
        descriptor = self._registry.get(module_id)
        if descriptor is None:
            return False
        return self.run_hook(descriptor, "on_disable")

    # ----- Invocation -----

    def _hooks_for(self, descriptor: ModuleDescriptor) -> dict[str, Any]:
        hooks = self._hooks.get(descriptor.module_id)
        if hooks is None:
            hooks = load_hooks(descriptor.location / self._hooks_file, descriptor.module_id)
            self._hooks[descriptor.module_id] = hooks
        return hooks

    def run_hook(self, descriptor: ModuleDescriptor, name: str, *args: Any) -> bool:
        """Invoke one hook of a module.

        Returns True if the hook ran to completion, False if the module has
        no such hook or the hook raised.
        """
        hook = self._hooks_for(descriptor).get(name)
        if hook is None or not callable(hook):
            return False
        try:
            hook(*args)
        except Exception as e:
            logger.error("Hook '%s' of module '%s' failed: %s", name, descriptor.module_id, e, exc_info=True)
            return False
        logger.debug("Hook '%s' of module '%s' ran", name, descriptor.module_id)
        return True
