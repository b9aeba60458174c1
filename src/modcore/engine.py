"""ModuleEngine: wires the registry, loader and hook runner from one Config."""

from __future__ import annotations

import logging
from pathlib import Path

from modcore.config import Config
from modcore.errors import ModuleError
from modcore.hooks import HookRunner, SetupResult
from modcore.loader import CapabilityContainer, Loader
from modcore.registry import Registry

logger = logging.getLogger(__name__)

__all__ = ["ModuleEngine"]


class ModuleEngine:
    """Boots the module system and mediates enable/disable at runtime."""

    def __init__(
        self,
        config: Config | None = None,
        container: CapabilityContainer | None = None,
        modules_dir: str | Path | None = None,
    ) -> None:
        self._config = config if config is not None else Config()
        self._registry = Registry(config=self._config, modules_dir=modules_dir)
        self._loader = Loader(self._registry, container=container)
        self._hooks = HookRunner(self._registry, config=self._config)
        self._setup: SetupResult | None = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def loader(self) -> Loader:
        return self._loader

    @property
    def hooks(self) -> HookRunner:
        return self._hooks

    @property
    def setup_result(self) -> SetupResult | None:
        """Outcome of the setup pass run by :meth:`boot`, or None before boot."""
        return self._setup

    def boot(self) -> SetupResult:
        """Resolve modules, run setup hooks, activate modules, run after-setup hooks.

        Raises:
            ModuleError: The module graph or a descriptor is invalid. The
                error is logged before it propagates.
        """
        try:
            self._registry.load()
        except ModuleError as e:
            logger.error("Module system failed to start: %s", e)
            raise

        self._setup = self._hooks.run_setup_hooks()
        self._loader.load()
        self._hooks.run_after_setup_hooks()
        logger.info(
            "Module system started: %d loaded, %d deferred",
            len(self._loader.loaded),
            len(self._loader.deferred),
        )
        return self._setup

    def enable(self, module_id: str) -> bool:
        """Enable a module and run its ``on_enable`` hook. False if unknown."""
        if not self._registry.enable(module_id):
            return False
        self._hooks.run_enable_hook(module_id)
        return True

    def disable(self, module_id: str) -> bool:
        """Disable a module and run its ``on_disable`` hook. False if unknown."""
        if not self._registry.disable(module_id):
            return False
        self._hooks.run_disable_hook(module_id)
        return True
