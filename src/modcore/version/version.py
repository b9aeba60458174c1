"""Semantic version value type, parsing and ordering."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

from modcore.errors import VersionParseError

__all__ = ["Version", "parse_version", "compare_versions", "normalize_version"]

_VERSION_RE = re.compile(
    r"^[vV]?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)

_SHORT_RE = re.compile(r"^(?P<prefix>[vV]?)(?P<core>\d+(?:\.\d+){0,2})(?P<rest>[-+].*)?$")


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A parsed ``major.minor.patch[-pre_release][+build]`` version.

    Build metadata is informational only: it takes no part in ordering,
    equality or hashing.
    """

    major: int
    minor: int
    patch: int
    pre_release: str | None = None
    build: str | None = None

    @classmethod
    def parse(cls, text: str) -> Version:
        return parse_version(text)

    def _key(self) -> tuple[int, int, int, int, str]:
        # A release sorts after every pre-release of the same triple.
        if self.pre_release is None:
            return (self.major, self.minor, self.patch, 1, "")
        return (self.major, self.minor, self.patch, 0, self.pre_release)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre_release:
            text += f"-{self.pre_release}"
        if self.build:
            text += f"+{self.build}"
        return text

    def bump_major(self) -> Version:
        return Version(self.major + 1, 0, 0)

    def bump_minor(self) -> Version:
        return Version(self.major, self.minor + 1, 0)

    def bump_patch(self) -> Version:
        return Version(self.major, self.minor, self.patch + 1)


def parse_version(text: str) -> Version:
    """Parse a full semantic version string.

    Raises:
        VersionParseError: If any of major, minor or patch is missing or
            not a non-negative integer.
    """
    if not isinstance(text, str):
        raise VersionParseError(text=str(text))
    match = _VERSION_RE.match(text.strip())
    if match is None:
        raise VersionParseError(text=text)
    return Version(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        pre_release=match.group("pre"),
        build=match.group("build"),
    )


def normalize_version(text: str) -> tuple[str, int]:
    """Zero-fill a short version (``1`` or ``1.2``) to ``major.minor.patch``.

    Returns the normalized string and the number of numeric components that
    were actually written, which tilde and caret need to pick their upper
    bound.
    """
    stripped = text.strip()
    match = _SHORT_RE.match(stripped)
    if match is None:
        return stripped, 3
    parts = match.group("core").split(".")
    count = len(parts)
    parts += ["0"] * (3 - count)
    return ".".join(parts) + (match.group("rest") or ""), count


def compare_versions(a: Version | str, b: Version | str) -> int:
    """Return -1, 0 or 1 as ``a`` is less than, equal to or greater than ``b``."""
    left = a if isinstance(a, Version) else parse_version(a)
    right = b if isinstance(b, Version) else parse_version(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0
