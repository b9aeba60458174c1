"""Semantic versions and version constraints.

Usage::

    from modcore.version import parse_version, satisfies

    satisfies(parse_version("1.2.4"), "^1.2.3")  # True
"""

from __future__ import annotations

from modcore.version.constraint import AllOf, AnyOf, AnyVersion, Comparison, Constraint, satisfies
from modcore.version.version import Version, compare_versions, normalize_version, parse_version

__all__ = [
    "AllOf",
    "AnyOf",
    "AnyVersion",
    "Comparison",
    "Constraint",
    "Version",
    "compare_versions",
    "normalize_version",
    "parse_version",
    "satisfies",
]
