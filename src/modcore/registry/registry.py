"""Central module registry: discovery, resolved load order, enable/disable and caching."""

from __future__ import annotations

import logging
from pathlib import Path

from modcore.config import Config
from modcore.errors import (
    CircularDependencyError,
    ConflictDetectedError,
    DuplicateModuleError,
    MissingDependencyError,
    VersionMismatchError,
)
from modcore.registry.cache import JsonFileStore, RegistrySnapshot
from modcore.registry.dependencies import dependents_of, load_levels, resolve_dependencies
from modcore.registry.metadata import DESCRIPTOR_FILE, update_enabled_flag
from modcore.registry.scanner import compute_fingerprint, scan_modules, still_resolves
from modcore.registry.types import MissingOptional, ModuleDescriptor, Resolution

logger = logging.getLogger(__name__)

__all__ = ["Registry"]

_RESOLUTION_ERRORS = (
    MissingDependencyError,
    CircularDependencyError,
    VersionMismatchError,
    ConflictDetectedError,
)


class Registry:
    """Owns the installed module descriptors and their resolved load order."""

    def __init__(
        self,
        config: Config | None = None,
        modules_dir: str | Path | None = None,
        cache_path: str | Path | None = None,
        descriptor_name: str | None = None,
    ) -> None:
        """Initialize the Registry.

        Args:
            config: Optional Config supplying ``modules.root``,
                ``modules.descriptor`` and ``cache.registry``.
            modules_dir: Directory holding one subdirectory per module.
            cache_path: Location of the registry cache file.
            descriptor_name: Descriptor file name inside each module directory.

        Explicit arguments take precedence over ``config``.
        """
        if config is None:
            config = Config()

        self._modules_dir = Path(modules_dir) if modules_dir is not None else config.path("modules.root")
        self._descriptor_name = descriptor_name or config.get("modules.descriptor") or DESCRIPTOR_FILE
        self._cache = JsonFileStore(cache_path if cache_path is not None else config.path("cache.registry"))

        # Internal state
        self._modules: dict[str, ModuleDescriptor] = {}
        self._resolution = Resolution()
        self._loaded = False

    @property
    def modules_dir(self) -> Path:
        return self._modules_dir

    @property
    def cache_path(self) -> Path:
        return self._cache.path

    @property
    def descriptor_name(self) -> str:
        return self._descriptor_name

    # ----- Loading -----

    def load(self) -> None:
        """Load the registry from cache, or scan and resolve if the cache is unusable.

        A second call is a no-op.

        Raises:
            MissingDependencyError, CircularDependencyError,
            VersionMismatchError, ConflictDetectedError: The module graph is
                invalid.
            DuplicateModuleError, InvalidDescriptorError: A descriptor is bad.
        """
        if self._loaded:
            return
        if self._load_from_cache():
            self._loaded = True
            return
        self._build()

    def rebuild(self) -> None:
        """Discard in-memory state and cache, then rescan and re-resolve."""
        self._loaded = False
        self._modules = {}
        self._resolution = Resolution()
        self._cache.invalidate()
        self._build()
        logger.info("Module registry rebuilt: %d enabled of %d modules", len(self._resolution.order), len(self._modules))

    def clear_cache(self) -> None:
        """Delete the cache file; the next access rescans."""
        self._cache.invalidate()
        self._modules = {}
        self._resolution = Resolution()
        self._loaded = False

    def _build(self) -> None:
        fingerprint = compute_fingerprint(self._modules_dir, self._descriptor_name)
        modules = {d.module_id: d for d in scan_modules(self._modules_dir, self._descriptor_name)}
        resolution = resolve_dependencies(modules)

        self._modules = modules
        self._resolution = resolution
        self._save_to_cache(fingerprint)
        self._loaded = True

    def _load_from_cache(self) -> bool:
        snapshot = RegistrySnapshot.from_store(self._cache)
        if snapshot is None:
            return False

        fingerprint = compute_fingerprint(self._modules_dir, self._descriptor_name)
        if snapshot.fingerprint != fingerprint:
            logger.debug("Registry cache %s is stale", self._cache.path)
            return False

        hydrated = snapshot.hydrate()
        if hydrated is None:
            return False
        modules, resolution = hydrated

        dropped = [module_id for module_id, d in modules.items() if not still_resolves(d, self._descriptor_name)]
        if dropped:
            for module_id in dropped:
                logger.debug("Cached module '%s' is no longer installed, dropping it", module_id)
                del modules[module_id]
            resolution = resolve_dependencies(modules)

        self._modules = modules
        self._resolution = resolution
        if dropped:
            self._save_to_cache(fingerprint)
        return True

    def _save_to_cache(self, fingerprint: str) -> None:
        snapshot = RegistrySnapshot.capture(fingerprint, self._modules, self._resolution)
        try:
            self._cache.write(snapshot.to_dict())
        except OSError as e:
            logger.warning("Could not write registry cache %s: %s", self._cache.path, e)

    # ----- Manual Registration -----

    def register(self, descriptor: ModuleDescriptor) -> None:
        """Add a module that does not live in the modules directory.

        The load order is re-resolved including the new module. Programmatic
        modules are not cached and disappear on :meth:`rebuild`.

        Raises:
            DuplicateModuleError: If the id is already registered.
        """
        self.load()
        if descriptor.module_id in self._modules:
            existing = self._modules[descriptor.module_id]
            raise DuplicateModuleError(
                module_id=descriptor.module_id,
                locations=[str(existing.location), str(descriptor.location)],
            )
        candidate = {**self._modules, descriptor.module_id: descriptor}
        resolution = resolve_dependencies(candidate)
        self._modules = candidate
        self._resolution = resolution

    # ----- Enable / Disable -----

    def enable(self, module_id: str) -> bool:
        """Enable a module at its source and rebuild. Returns False if unknown."""
        return self._set_enabled(module_id, True)

    def disable(self, module_id: str) -> bool:
        """Disable a module at its source and rebuild. Returns False if unknown.

        Enabled modules that require it will fail resolution on the rebuild.
        """
        return self._set_enabled(module_id, False)

    def _set_enabled(self, module_id: str, enabled: bool) -> bool:
        try:
            self.load()
            modules = self._modules
        except _RESOLUTION_ERRORS as e:
            # An invalid graph must still be fixable by toggling modules.
            logger.debug("Registry unresolvable (%s), locating '%s' by scan", e, module_id)
            modules = {d.module_id: d for d in scan_modules(self._modules_dir, self._descriptor_name)}

        descriptor = modules.get(module_id)
        if descriptor is None:
            return False
        if descriptor.source is None:
            logger.warning("Module '%s' was registered programmatically and cannot be toggled", module_id)
            return False

        if not enabled:
            dependents = dependents_of(modules, module_id)
            if dependents:
                logger.warning("Disabling '%s' which is required by: %s", module_id, ", ".join(dependents))

        update_enabled_flag(descriptor.location / self._descriptor_name, enabled)
        logger.info("Module '%s' %s", module_id, "enabled" if enabled else "disabled")
        self.rebuild()
        return True

    # ----- Query Methods -----

    def get(self, module_id: str) -> ModuleDescriptor | None:
        """Look up a module by id. Returns None if not found."""
        self.load()
        return self._modules.get(module_id)

    def has(self, module_id: str) -> bool:
        self.load()
        return module_id in self._modules

    def all(self) -> dict[str, ModuleDescriptor]:
        """Every known module, enabled or not, keyed by id."""
        self.load()
        return dict(self._modules)

    def get_enabled(self) -> list[ModuleDescriptor]:
        """Enabled modules in resolved load order."""
        self.load()
        return [
            self._modules[module_id]
            for module_id in self._resolution.order
            if module_id in self._modules and self._modules[module_id].enabled
        ]

    @property
    def load_order(self) -> list[str]:
        self.load()
        return list(self._resolution.order)

    @property
    def missing_optional(self) -> list[MissingOptional]:
        self.load()
        return list(self._resolution.missing_optional)

    def load_levels(self) -> list[list[str]]:
        """Load order grouped into independently activatable levels."""
        self.load()
        return load_levels(self._modules, self._resolution.order)

    def dependents(self, module_id: str) -> list[str]:
        """Enabled modules that require ``module_id``."""
        self.load()
        return dependents_of(self._modules, module_id)

    @property
    def count(self) -> int:
        self.load()
        return len(self._modules)
