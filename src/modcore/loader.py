"""Module activation: eager loading in resolved order and lazy loading by route."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol, runtime_checkable

from modcore.errors import CircularDependencyError, MissingDependencyError
from modcore.registry import ModuleDescriptor, Registry

logger = logging.getLogger(__name__)

__all__ = ["CapabilityContainer", "Loader", "ModuleState", "ProviderContainer"]


class ModuleState(str, Enum):
    """Activation state of a single module."""

    UNLOADED = "unloaded"
    DEFERRED = "deferred"
    LOADED = "loaded"


@runtime_checkable
class CapabilityContainer(Protocol):
    """Protocol for the container that receives activated providers."""

    def register_provider(self, provider: str, module_id: str) -> None:
        """Register one provider reference declared by ``module_id``."""
        ...


class ProviderContainer:
    """Records provider registrations in memory, in activation order."""

    def __init__(self) -> None:
        self._registrations: list[tuple[str, str]] = []

    def register_provider(self, provider: str, module_id: str) -> None:
        self._registrations.append((provider, module_id))

    @property
    def providers(self) -> list[str]:
        return [provider for provider, _ in self._registrations]

    @property
    def registrations(self) -> list[tuple[str, str]]:
        """``(provider, module_id)`` pairs in the order they were registered."""
        return list(self._registrations)

    def providers_for(self, module_id: str) -> list[str]:
        return [provider for provider, owner in self._registrations if owner == module_id]


class Loader:
    """Activates enabled modules, deferring lazy ones until a route needs them."""

    def __init__(self, registry: Registry, container: CapabilityContainer | None = None) -> None:
        self._registry = registry
        self._container: CapabilityContainer = container if container is not None else ProviderContainer()

        self._loaded: list[str] = []
        self._deferred: dict[str, ModuleDescriptor] = {}
        self._activating: set[str] = set()
        self._commands: list[str] = []
        self._commands_collected: set[str] = set()
        self._route_map: dict[str, str] = {}
        self._booted = False

    @property
    def container(self) -> CapabilityContainer:
        return self._container

    # ----- Startup -----

    def load(self) -> None:
        """Walk the enabled modules in load order, activating or deferring each.

        A second call is a no-op.
        """
        if self._booted:
            return
        self._booted = True

        for descriptor in self._registry.get_enabled():
            if descriptor.module_id in self._loaded:
                continue
            if descriptor.lazy:
                self._defer(descriptor)
            else:
                self.load_module(descriptor)

        logger.debug(
            "Loader started: %d loaded, %d deferred, %d commands",
            len(self._loaded),
            len(self._deferred),
            len(self._commands),
        )

    def _defer(self, descriptor: ModuleDescriptor) -> None:
        self._deferred[descriptor.module_id] = descriptor
        for prefix in sorted(descriptor.route_prefixes):
            owner = self._route_map.get(prefix)
            if owner is not None and owner != descriptor.module_id:
                logger.warning(
                    "Route prefix '%s' of module '%s' is already claimed by '%s', ignoring it",
                    prefix,
                    descriptor.module_id,
                    owner,
                )
                continue
            self._route_map[prefix] = descriptor.module_id
        # Commands stay available while the module itself is deferred
        self._collect_commands(descriptor)

    # ----- Activation -----

    def load_module(self, descriptor: ModuleDescriptor) -> None:
        """Activate a module after every dependency it needs.

        Already loaded modules are skipped, so shared dependencies are
        activated once. An optional dependency is activated first only when
        it comes earlier in the registry's load order.

        Raises:
            MissingDependencyError: A required dependency is not an enabled
                module in the registry.
            CircularDependencyError: A required dependency is still being
                activated further up the chain.
        """
        module_id = descriptor.module_id
        if module_id in self._loaded or module_id in self._activating:
            return
        self._activating.add(module_id)
        try:
            for dep_id in descriptor.dependencies:
                dependency = self._registry.get(dep_id)
                if dependency is None or not dependency.enabled:
                    raise MissingDependencyError(
                        module_id=module_id,
                        dependency_id=dep_id,
                        disabled=dependency is not None,
                    )
                if dep_id in self._activating:
                    raise CircularDependencyError(module_a=module_id, module_b=dep_id)
                self.load_module(dependency)

            position = {mid: index for index, mid in enumerate(self._registry.load_order)}
            own_position = position.get(module_id, len(position))
            for dep_id in descriptor.optional_dependencies:
                dependency = self._registry.get(dep_id)
                if dependency is None or not dependency.enabled:
                    continue
                # Optional edges that would close a cycle were dropped from the order
                if position.get(dep_id, own_position) >= own_position:
                    continue
                self.load_module(dependency)

            for provider in descriptor.providers:
                self._container.register_provider(provider, module_id)
            self._collect_commands(descriptor)
        finally:
            self._activating.discard(module_id)

        self._loaded.append(module_id)
        self._deferred.pop(module_id, None)
        logger.debug("Module '%s' loaded", module_id)

    def _collect_commands(self, descriptor: ModuleDescriptor) -> None:
        if descriptor.module_id in self._commands_collected:
            return
        self._commands_collected.add(descriptor.module_id)
        self._commands.extend(descriptor.commands)

    def load_for_route(self, path: str) -> list[str]:
        """Activate every deferred module whose route prefix matches ``path``.

        A prefix matches when ``path`` starts with it, or equals it without
        its trailing slash. Returns the ids activated by this call.
        """
        activated: list[str] = []
        for prefix, module_id in list(self._route_map.items()):
            if not (path.startswith(prefix) or path == prefix.rstrip("/")):
                continue
            if module_id in self._loaded or module_id in activated:
                continue
            if self.load_deferred(module_id):
                logger.info("Module '%s' activated by route '%s'", module_id, path)
                activated.append(module_id)
        return activated

    def load_deferred(self, module_id: str) -> bool:
        """Activate a deferred module.

        Returns True if the module is loaded afterwards, False if it is not
        a known deferred module.
        """
        if module_id in self._loaded:
            return True
        descriptor = self._deferred.get(module_id)
        if descriptor is None:
            return False
        self.load_module(descriptor)
        return True

    # ----- Query Methods -----

    def state(self, module_id: str) -> ModuleState:
        if module_id in self._loaded:
            return ModuleState.LOADED
        if module_id in self._deferred:
            return ModuleState.DEFERRED
        return ModuleState.UNLOADED

    def is_loaded(self, module_id: str) -> bool:
        return module_id in self._loaded

    @property
    def loaded(self) -> list[str]:
        """Loaded module ids in activation order."""
        return list(self._loaded)

    @property
    def deferred(self) -> list[str]:
        return list(self._deferred)

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    @property
    def route_map(self) -> dict[str, str]:
        """Route prefix to owning module id, for lazy modules."""
        return dict(self._route_map)
