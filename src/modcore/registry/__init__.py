"""modcore registry: module discovery, dependency resolution and caching.

Usage::

    from modcore.registry import Registry

    registry = Registry(modules_dir="./modules")
    order = registry.load_order
"""

from __future__ import annotations

from modcore.registry.cache import JsonFileStore, RegistrySnapshot
from modcore.registry.dependencies import dependents_of, load_levels, resolve_dependencies
from modcore.registry.metadata import (
    DESCRIPTOR_FILE,
    ModuleManifest,
    legacy_marker_name,
    load_descriptor,
    load_manifest,
    update_enabled_flag,
)
from modcore.registry.registry import Registry
from modcore.registry.scanner import compute_fingerprint, scan_modules, still_resolves
from modcore.registry.types import MissingOptional, ModuleDescriptor, Resolution

__all__ = [
    "DESCRIPTOR_FILE",
    "JsonFileStore",
    "MissingOptional",
    "ModuleDescriptor",
    "ModuleManifest",
    "Registry",
    "RegistrySnapshot",
    "Resolution",
    "compute_fingerprint",
    "dependents_of",
    "legacy_marker_name",
    "load_descriptor",
    "load_levels",
    "load_manifest",
    "resolve_dependencies",
    "scan_modules",
    "still_resolves",
    "update_enabled_flag",
]
