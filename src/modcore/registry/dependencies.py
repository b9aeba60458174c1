"""Dependency resolution via depth-first topological sort."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from modcore.errors import (
    CircularDependencyError,
    ConflictDetectedError,
    MissingDependencyError,
    VersionMismatchError,
)
from modcore.registry.types import MissingOptional, ModuleDescriptor, Resolution
from modcore.version import satisfies

logger = logging.getLogger(__name__)

__all__ = ["dependents_of", "load_levels", "resolve_dependencies"]


def resolve_dependencies(descriptors: Mapping[str, ModuleDescriptor]) -> Resolution:
    """Resolve the load order of the enabled modules.

    Disabled modules are left out of the graph entirely, so a module that
    requires a disabled one fails exactly as if the dependency were missing.
    Top-level modules are visited in sorted id order and dependencies in
    declared order, which makes the result deterministic.

    Present and compatible optional dependencies are ordered before their
    dependent unless that would close a cycle; unusable ones are reported in
    ``Resolution.missing_optional``.

    Returns:
        Resolution whose ``order`` lists every enabled module id with
        dependencies first.

    Raises:
        MissingDependencyError: A required dependency is absent or disabled.
        VersionMismatchError: A dependency's version fails its constraint.
        CircularDependencyError: Required dependencies form a cycle.
        ConflictDetectedError: Two enabled modules are declared incompatible.
    """
    enabled = {module_id: d for module_id, d in descriptors.items() if d.enabled}
    if not enabled:
        return Resolution()

    # Build required edges, validating existence and versions
    edges: dict[str, list[str]] = {module_id: [] for module_id in sorted(enabled)}
    for module_id in edges:
        module = enabled[module_id]
        for dep_id, constraint in module.dependencies.items():
            dependency = enabled.get(dep_id)
            if dependency is None:
                raise MissingDependencyError(
                    module_id=module_id,
                    dependency_id=dep_id,
                    disabled=dep_id in descriptors,
                )
            if not satisfies(dependency.version, constraint):
                raise VersionMismatchError(
                    module_id=module_id,
                    dependency_id=dep_id,
                    constraint=constraint,
                    actual_version=str(dependency.version),
                )
            edges[module_id].append(dep_id)

    # Fails on a cycle before any optional edge is considered
    _depth_first_order(edges)

    missing_optional: list[MissingOptional] = []
    for module_id in edges:
        for dep_id, constraint in enabled[module_id].optional_dependencies.items():
            dependency = enabled.get(dep_id)
            if dependency is None:
                reason = "disabled" if dep_id in descriptors else "missing"
                missing_optional.append(MissingOptional(module_id, dep_id, constraint, reason))
                continue
            if not satisfies(dependency.version, constraint):
                missing_optional.append(MissingOptional(module_id, dep_id, constraint, "incompatible"))
                continue
            if dep_id in edges[module_id] or dep_id == module_id:
                continue
            if _reaches(edges, dep_id, module_id):
                logger.debug(
                    "Optional dependency '%s' of '%s' would close a cycle, not ordering it",
                    dep_id,
                    module_id,
                )
                continue
            edges[module_id].append(dep_id)

    order = _depth_first_order(edges)
    _check_conflicts(enabled)

    for missing in missing_optional:
        logger.warning(
            "Optional dependency '%s' (%s) for module '%s' is %s, skipping",
            missing.dependency_id,
            missing.constraint,
            missing.module_id,
            missing.reason,
        )

    return Resolution(order=order, missing_optional=missing_optional)


def _depth_first_order(edges: dict[str, list[str]]) -> list[str]:
    """Post-order DFS over ``edges``; raises on the edge that closes a cycle."""
    order: list[str] = []
    resolved: set[str] = set()
    stack: list[str] = []
    in_progress: set[str] = set()

    def visit(module_id: str) -> None:
        stack.append(module_id)
        in_progress.add(module_id)
        for dep_id in edges[module_id]:
            if dep_id in resolved:
                continue
            if dep_id in in_progress:
                cycle_path = stack[stack.index(dep_id):] + [dep_id]
                raise CircularDependencyError(module_a=module_id, module_b=dep_id, cycle_path=cycle_path)
            visit(dep_id)
        stack.pop()
        in_progress.discard(module_id)
        resolved.add(module_id)
        order.append(module_id)

    for module_id in edges:
        if module_id not in resolved:
            visit(module_id)
    return order


def _reaches(edges: dict[str, list[str]], start: str, target: str) -> bool:
    """Whether ``target`` is reachable from ``start`` following ``edges``."""
    seen: set[str] = set()
    pending = [start]
    while pending:
        current = pending.pop()
        if current == target:
            return True
        if current in seen:
            continue
        seen.add(current)
        pending.extend(edges.get(current, []))
    return False


def _check_conflicts(enabled: dict[str, ModuleDescriptor]) -> None:
    # Every module's declarations are checked, so a conflict declared by
    # either side of a pair is caught.
    for module_id in sorted(enabled):
        for other_id, constraint in enabled[module_id].conflicts.items():
            other = enabled.get(other_id)
            if other is None or other_id == module_id:
                continue
            if satisfies(other.version, constraint):
                raise ConflictDetectedError(module_a=module_id, module_b=other_id, constraint=constraint)


def load_levels(descriptors: Mapping[str, ModuleDescriptor], order: list[str]) -> list[list[str]]:
    """Group a resolved order into levels.

    Every module in a level depends only on modules in earlier levels, so
    members of one level can be activated independently of each other.
    """
    level_of: dict[str, int] = {}
    for module_id in order:
        module = descriptors[module_id]
        deps = [d for d in (*module.dependencies, *module.optional_dependencies) if d in level_of]
        level_of[module_id] = 1 + max((level_of[d] for d in deps), default=-1)

    levels: list[list[str]] = []
    for module_id in order:
        level = level_of[module_id]
        while len(levels) <= level:
            levels.append([])
        levels[level].append(module_id)
    return levels


def dependents_of(descriptors: Mapping[str, ModuleDescriptor], module_id: str) -> list[str]:
    """Sorted ids of enabled modules that require ``module_id``."""
    return sorted(
        other_id
        for other_id, other in descriptors.items()
        if other.enabled and module_id in other.dependencies
    )
