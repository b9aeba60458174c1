"""Registry types: ModuleDescriptor, Resolution, MissingOptional."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from modcore.version import Version, parse_version

__all__ = [
    "ModuleDescriptor",
    "MissingOptional",
    "Resolution",
]


@dataclass(frozen=True)
class ModuleDescriptor:
    """Immutable description of one installed module.

    Attributes:
        module_id: Stable unique identifier; the key for graph edges.
        version: Declared module version.
        location: Directory the module lives in.
        source: The descriptor file or legacy marker the module was built
            from, or None for programmatically registered modules.
        dependencies: Required modules mapped to version constraints.
        optional_dependencies: Modules used when present, never required.
        conflicts: Modules that must not be enabled alongside this one,
            mapped to the conflicting version range.
        providers: Capability references registered on activation, in order.
        commands: Command references collected on activation, in order.
        lazy: Whether activation waits for a route trigger.
        route_prefixes: Request path prefixes that activate a lazy module.
        enabled: Whether the module takes part in resolution.
    """

    module_id: str
    version: Version
    location: Path
    source: Path | None = None
    description: str = ""
    dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    conflicts: dict[str, str] = field(default_factory=dict)
    providers: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    lazy: bool = False
    route_prefixes: frozenset[str] = frozenset()
    enabled: bool = True
    config_file: str | None = None
    routes_file: str | None = None
    events_file: str | None = None

    # ----- Companion files -----

    def file_path(self, relative_path: str) -> Path:
        """Full path to a file within the module directory."""
        return self.location / relative_path.lstrip("/")

    def has_file(self, relative_path: str) -> bool:
        return self.file_path(relative_path).exists()

    def has_assets(self, context: str = "frontend") -> bool:
        return (self.location / "view" / context).is_dir()

    def load_config(self) -> dict[str, Any]:
        return self._load_companion(self.config_file)

    def load_routes(self) -> dict[str, Any]:
        return self._load_companion(self.routes_file)

    def load_events(self) -> dict[str, Any]:
        return self._load_companion(self.events_file)

    def _load_companion(self, relative_path: str | None) -> dict[str, Any]:
        if relative_path is None:
            return {}
        path = self.file_path(relative_path)
        if not path.exists():
            return {}
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        return parsed if isinstance(parsed, dict) else {}

    # ----- Serialization -----

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict for caching."""
        return {
            "id": self.module_id,
            "version": str(self.version),
            "location": str(self.location),
            "source": str(self.source) if self.source is not None else None,
            "description": self.description,
            "dependencies": dict(self.dependencies),
            "optional_dependencies": dict(self.optional_dependencies),
            "conflicts": dict(self.conflicts),
            "providers": list(self.providers),
            "commands": list(self.commands),
            "lazy": self.lazy,
            "route_prefixes": sorted(self.route_prefixes),
            "enabled": self.enabled,
            "config": self.config_file,
            "routes": self.routes_file,
            "events": self.events_file,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleDescriptor:
        """Create from a dict produced by :meth:`to_dict`."""
        source = data.get("source")
        return cls(
            module_id=data["id"],
            version=parse_version(data["version"]),
            location=Path(data["location"]),
            source=Path(source) if source is not None else None,
            description=data.get("description", ""),
            dependencies=dict(data.get("dependencies", {})),
            optional_dependencies=dict(data.get("optional_dependencies", {})),
            conflicts=dict(data.get("conflicts", {})),
            providers=tuple(data.get("providers", [])),
            commands=tuple(data.get("commands", [])),
            lazy=data.get("lazy", False),
            route_prefixes=frozenset(data.get("route_prefixes", [])),
            enabled=data.get("enabled", True),
            config_file=data.get("config"),
            routes_file=data.get("routes"),
            events_file=data.get("events"),
        )


@dataclass(frozen=True)
class MissingOptional:
    """An optional dependency that was not usable during resolution.

    ``reason`` is ``"missing"``, ``"disabled"`` or ``"incompatible"``.
    """

    module_id: str
    dependency_id: str
    constraint: str
    reason: str


@dataclass
class Resolution:
    """Outcome of dependency resolution."""

    order: list[str] = field(default_factory=list)
    missing_optional: list[MissingOptional] = field(default_factory=list)
