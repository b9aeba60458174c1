"""modcore - Module dependency and lifecycle engine."""

from __future__ import annotations

# Core
from modcore.engine import ModuleEngine
from modcore.registry import Registry
from modcore.registry.metadata import MODULE_ID_PATTERN
from modcore.registry.types import MissingOptional, ModuleDescriptor, Resolution
from modcore.loader import CapabilityContainer, Loader, ModuleState, ProviderContainer
from modcore.hooks import HookProvider, HookRunner, SetupResult

# Versions
from modcore.version import Constraint, Version, compare_versions, parse_version, satisfies

# Config
from modcore.config import Config

# Errors
from modcore.errors import (
    CircularDependencyError,
    ConfigError,
    ConfigNotFoundError,
    ConflictDetectedError,
    ConstraintParseError,
    DuplicateModuleError,
    ErrorCodes,
    InvalidDescriptorError,
    MissingDependencyError,
    ModuleError,
    VersionMismatchError,
    VersionParseError,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "ModuleEngine",
    "Registry",
    "MODULE_ID_PATTERN",
    "ModuleDescriptor",
    "MissingOptional",
    "Resolution",
    "Loader",
    "ModuleState",
    "CapabilityContainer",
    "ProviderContainer",
    "HookProvider",
    "HookRunner",
    "SetupResult",
    # Versions
    "Version",
    "Constraint",
    "parse_version",
    "compare_versions",
    "satisfies",
    # Config
    "Config",
    # Errors
    "ModuleError",
    "ConfigError",
    "ConfigNotFoundError",
    "VersionParseError",
    "ConstraintParseError",
    "InvalidDescriptorError",
    "DuplicateModuleError",
    "MissingDependencyError",
    "CircularDependencyError",
    "VersionMismatchError",
    "ConflictDetectedError",
    "ErrorCodes",
]
