"""Descriptor file loading for the registry system."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modcore.errors import InvalidDescriptorError, VersionParseError
from modcore.registry.types import ModuleDescriptor
from modcore.version import parse_version

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_VERSION",
    "DESCRIPTOR_FILE",
    "MODULE_ID_PATTERN",
    "ModuleManifest",
    "build_descriptor",
    "is_valid_module_id",
    "legacy_marker_name",
    "load_descriptor",
    "load_manifest",
    "update_enabled_flag",
]

DESCRIPTOR_FILE = "module.yaml"
DEFAULT_VERSION = "1.0.0"
MODULE_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")

_ENABLED_LINE_RE = re.compile(r"^enabled\s*:.*$", re.MULTILINE)


class ModuleManifest(BaseModel):
    """Schema of a ``module.yaml`` descriptor file."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    version: str = DEFAULT_VERSION
    description: str = ""
    dependencies: dict[str, str] = Field(default_factory=dict)
    optional_dependencies: dict[str, str] = Field(default_factory=dict)
    conflicts: dict[str, str] = Field(default_factory=dict)
    providers: list[str] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)
    lazy: bool = False
    route_prefixes: list[str] = Field(default_factory=list)
    enabled: bool = True
    config: str | None = None
    routes: str | None = None
    events: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_VERSION
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("dependencies", "optional_dependencies", "conflicts", mode="before")
    @classmethod
    def _coerce_constraint_map(cls, value: Any) -> Any:
        """Accept ``{id: constraint}``, a list of ids, or a list of ``{module_id, version}``."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): "*" if v is None else str(v) for k, v in value.items()}
        if isinstance(value, list):
            result: dict[str, str] = {}
            for item in value:
                if isinstance(item, str):
                    result[item] = "*"
                elif isinstance(item, dict) and item.get("module_id"):
                    result[str(item["module_id"])] = str(item.get("version") or "*")
                else:
                    raise ValueError(f"unsupported entry {item!r}")
            return result
        return value

    @field_validator("providers", "commands", "route_prefixes", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


def is_valid_module_id(module_id: str) -> bool:
    return bool(MODULE_ID_PATTERN.match(module_id))


def legacy_marker_name(module_id: str) -> str:
    """File name whose presence marks a directory as a legacy module."""
    return f"{module_id[:1].upper()}{module_id[1:]}Module.py"


def load_manifest(descriptor_path: Path) -> ModuleManifest:
    """Load and validate a descriptor file.

    Raises:
        InvalidDescriptorError: If the file is unreadable, not valid YAML,
            not a mapping, or fails schema validation.
    """
    try:
        content = descriptor_path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidDescriptorError(file_path=str(descriptor_path), reason=str(e)) from e

    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise InvalidDescriptorError(file_path=str(descriptor_path), reason=f"YAML parse error: {e}") from e

    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        raise InvalidDescriptorError(file_path=str(descriptor_path), reason="must be a YAML mapping")

    try:
        return ModuleManifest.model_validate(parsed)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidDescriptorError(file_path=str(descriptor_path), reason=problems) from e


def build_descriptor(manifest: ModuleManifest, module_dir: Path, source: Path) -> ModuleDescriptor:
    """Turn a validated manifest into a :class:`ModuleDescriptor`.

    The module id defaults to the directory name.
    """
    module_id = manifest.id or manifest.name or module_dir.name
    if not is_valid_module_id(module_id):
        raise InvalidDescriptorError(
            file_path=str(source),
            reason=f"module id '{module_id}' must match {MODULE_ID_PATTERN.pattern}",
        )
    try:
        version = parse_version(manifest.version)
    except VersionParseError as e:
        raise InvalidDescriptorError(
            file_path=str(source),
            reason=f"invalid version '{manifest.version}'",
            cause=e,
        ) from e

    return ModuleDescriptor(
        module_id=module_id,
        version=version,
        location=module_dir,
        source=source,
        description=manifest.description,
        dependencies=manifest.dependencies,
        optional_dependencies=manifest.optional_dependencies,
        conflicts=manifest.conflicts,
        providers=tuple(manifest.providers),
        commands=tuple(manifest.commands),
        lazy=manifest.lazy,
        route_prefixes=frozenset(manifest.route_prefixes),
        enabled=manifest.enabled,
        config_file=manifest.config,
        routes_file=manifest.routes,
        events_file=manifest.events,
    )


def load_descriptor(module_dir: Path, descriptor_name: str = DESCRIPTOR_FILE) -> ModuleDescriptor | None:
    """Build the descriptor for one candidate directory.

    Returns None when the directory holds neither a descriptor file nor a
    legacy marker; such directories are simply not modules.
    """
    descriptor_path = module_dir / descriptor_name
    if descriptor_path.is_file():
        return build_descriptor(load_manifest(descriptor_path), module_dir, descriptor_path)

    marker = module_dir / legacy_marker_name(module_dir.name)
    if not marker.is_file():
        return None
    if not is_valid_module_id(module_dir.name):
        logger.warning("Skipping legacy module with invalid name '%s' at %s", module_dir.name, module_dir)
        return None
    return ModuleDescriptor(
        module_id=module_dir.name,
        version=parse_version(DEFAULT_VERSION),
        location=module_dir,
        source=marker,
    )


def update_enabled_flag(descriptor_path: Path, enabled: bool) -> None:
    """Rewrite the ``enabled`` key of a descriptor file in place.

    Other lines are preserved. The key is appended when absent, and the file
    is created for legacy modules that have none.
    """
    original = descriptor_path.read_text(encoding="utf-8") if descriptor_path.exists() else ""
    line = f"enabled: {'true' if enabled else 'false'}"

    if _ENABLED_LINE_RE.search(original):
        content = _ENABLED_LINE_RE.sub(line, original, count=1)
    else:
        content = original
        if content and not content.endswith("\n"):
            content += "\n"
        content += line + "\n"

    try:
        check = yaml.safe_load(content)
    except yaml.YAMLError:
        check = None
    if not isinstance(check, dict) or check.get("enabled") is not enabled:
        # Flow-style or otherwise unusual files: fall back to a full re-dump.
        data = yaml.safe_load(original) if original.strip() else {}
        if not isinstance(data, dict):
            raise InvalidDescriptorError(file_path=str(descriptor_path), reason="must be a YAML mapping")
        data["enabled"] = enabled
        content = yaml.safe_dump(data, sort_keys=False)

    descriptor_path.write_text(content, encoding="utf-8")
