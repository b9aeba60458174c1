"""Error hierarchy for the modcore engine."""

from __future__ import annotations

from typing import Any

__all__ = [
    "ModuleError",
    "ConfigNotFoundError",
    "ConfigError",
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


class ModuleError(Exception):
    """Base error for all modcore errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details: dict[str, Any] = details or {}
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigNotFoundError(ModuleError):
    """Raised when a configuration file cannot be found."""

    def __init__(self, config_path: str, **kwargs: Any) -> None:
        super().__init__(
            code="CONFIG_NOT_FOUND",
            message=f"Configuration file not found: {config_path}",
            details={"config_path": config_path},
            **kwargs,
        )


class ConfigError(ModuleError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(code="CONFIG_INVALID", message=message, **kwargs)


class VersionParseError(ModuleError):
    """Raised when a version string is not ``major.minor.patch[-pre][+build]``."""

    def __init__(self, text: str, **kwargs: Any) -> None:
        super().__init__(
            code="VERSION_PARSE_ERROR",
            message=f"Invalid version string: '{text}'",
            details={"text": text},
            **kwargs,
        )

    @property
    def text(self) -> str:
        return self.details["text"]


class ConstraintParseError(ModuleError):
    """Raised when a version constraint expression cannot be parsed."""

    def __init__(self, constraint: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            code="CONSTRAINT_PARSE_ERROR",
            message=f"Invalid version constraint '{constraint}': {reason}",
            details={"constraint": constraint, "reason": reason},
            **kwargs,
        )


class InvalidDescriptorError(ModuleError):
    """Raised when a module descriptor file is unreadable or fails validation."""

    def __init__(self, file_path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            code="DESCRIPTOR_INVALID",
            message=f"Invalid module descriptor '{file_path}': {reason}",
            details={"file_path": file_path, "reason": reason},
            **kwargs,
        )


class DuplicateModuleError(ModuleError):
    """Raised when two modules claim the same id."""

    def __init__(self, module_id: str, locations: list[str] | None = None, **kwargs: Any) -> None:
        where = f" ({', '.join(locations)})" if locations else ""
        super().__init__(
            code="DUPLICATE_MODULE",
            message=f"Module already registered: {module_id}{where}",
            details={"module_id": module_id, "locations": locations or []},
            **kwargs,
        )

    @property
    def module_id(self) -> str:
        return self.details["module_id"]


class MissingDependencyError(ModuleError):
    """Raised when an enabled module requires a module that is absent or disabled."""

    def __init__(self, module_id: str, dependency_id: str, disabled: bool = False, **kwargs: Any) -> None:
        state = "disabled" if disabled else "missing"
        super().__init__(
            code="MISSING_DEPENDENCY",
            message=f"Module '{module_id}' depends on {state} module '{dependency_id}'",
            details={"module_id": module_id, "dependency_id": dependency_id, "disabled": disabled},
            **kwargs,
        )

    @property
    def module_id(self) -> str:
        """The module whose requirement could not be met."""
        return self.details["module_id"]

    @property
    def dependency_id(self) -> str:
        """The required module that is absent or disabled."""
        return self.details["dependency_id"]


class CircularDependencyError(ModuleError):
    """Raised when circular dependencies are detected among modules.

    ``module_a -> module_b`` is the edge that closed the cycle; ``cycle_path``
    is the full loop, starting and ending on ``module_b``.
    """

    def __init__(self, module_a: str, module_b: str, cycle_path: list[str] | None = None, **kwargs: Any) -> None:
        path = cycle_path or [module_b, module_a, module_b]
        super().__init__(
            code="CIRCULAR_DEPENDENCY",
            message=f"Circular dependency detected: {' -> '.join(path)} (closed by {module_a} -> {module_b})",
            details={"module_a": module_a, "module_b": module_b, "cycle_path": path},
            **kwargs,
        )

    @property
    def module_a(self) -> str:
        return self.details["module_a"]

    @property
    def module_b(self) -> str:
        return self.details["module_b"]

    @property
    def cycle_path(self) -> list[str]:
        return self.details["cycle_path"]


class VersionMismatchError(ModuleError):
    """Raised when a dependency's version does not satisfy the declared constraint."""

    def __init__(
        self,
        module_id: str,
        dependency_id: str,
        constraint: str,
        actual_version: str,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            code="VERSION_MISMATCH",
            message=(
                f"Module '{module_id}' requires '{dependency_id}' {constraint}, "
                f"but {actual_version} is installed"
            ),
            details={
                "module_id": module_id,
                "dependency_id": dependency_id,
                "constraint": constraint,
                "actual_version": actual_version,
            },
            **kwargs,
        )

    @property
    def module_id(self) -> str:
        return self.details["module_id"]

    @property
    def dependency_id(self) -> str:
        return self.details["dependency_id"]

    @property
    def constraint(self) -> str:
        return self.details["constraint"]

    @property
    def actual_version(self) -> str:
        return self.details["actual_version"]


class ConflictDetectedError(ModuleError):
    """Raised when two enabled modules are declared incompatible.

    ``module_a`` is the module that declared the conflict.
    """

    def __init__(self, module_a: str, module_b: str, constraint: str = "*", **kwargs: Any) -> None:
        super().__init__(
            code="CONFLICT_DETECTED",
            message=f"Module '{module_a}' conflicts with '{module_b}' {constraint}",
            details={"module_a": module_a, "module_b": module_b, "constraint": constraint},
            **kwargs,
        )

    @property
    def module_a(self) -> str:
        return self.details["module_a"]

    @property
    def module_b(self) -> str:
        return self.details["module_b"]


class ErrorCodes:
    """All engine error codes as constants.

    Use these instead of hardcoding error code strings.

    Example:
        if error.code == ErrorCodes.MISSING_DEPENDENCY:
            handle_missing()
    """

    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    CONFIG_INVALID = "CONFIG_INVALID"
    VERSION_PARSE_ERROR = "VERSION_PARSE_ERROR"
    CONSTRAINT_PARSE_ERROR = "CONSTRAINT_PARSE_ERROR"
    DESCRIPTOR_INVALID = "DESCRIPTOR_INVALID"
    DUPLICATE_MODULE = "DUPLICATE_MODULE"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    CONFLICT_DETECTED = "CONFLICT_DETECTED"

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("ErrorCodes is immutable")
