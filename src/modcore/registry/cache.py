"""Persisted cache artifacts: a small JSON file store and the registry snapshot schema."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modcore.errors import VersionParseError
from modcore.registry.types import MissingOptional, ModuleDescriptor, Resolution

logger = logging.getLogger(__name__)

__all__ = ["JsonFileStore", "RegistrySnapshot", "SNAPSHOT_FORMAT"]

SNAPSHOT_FORMAT = 1


class JsonFileStore:
    """Whole-file JSON persistence.

    Reads degrade to None on a missing or unreadable file; each write
    replaces the previous content.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable cache file %s: %s", self._path, e)
            return None
        if not isinstance(data, dict):
            logger.debug("Ignoring cache file %s: top level is not an object", self._path)
            return None
        return data

    def write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def invalidate(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass


class RegistrySnapshot(BaseModel):
    """Schema of the registry cache file."""

    model_config = ConfigDict(extra="ignore")

    format: int
    fingerprint: str
    generated_at: str = ""
    modules: dict[str, dict[str, Any]]
    load_order: list[str]
    missing_optional: list[dict[str, str]] = Field(default_factory=list)

    @classmethod
    def capture(
        cls,
        fingerprint: str,
        descriptors: dict[str, ModuleDescriptor],
        resolution: Resolution,
    ) -> RegistrySnapshot:
        return cls(
            format=SNAPSHOT_FORMAT,
            fingerprint=fingerprint,
            generated_at=datetime.now(timezone.utc).isoformat(),
            modules={module_id: d.to_dict() for module_id, d in descriptors.items()},
            load_order=list(resolution.order),
            missing_optional=[asdict(m) for m in resolution.missing_optional],
        )

    @classmethod
    def from_store(cls, store: JsonFileStore) -> RegistrySnapshot | None:
        """Read a snapshot; any structural problem is a cache miss."""
        data = store.read()
        if data is None:
            return None
        try:
            snapshot = cls.model_validate(data)
        except ValidationError as e:
            logger.debug("Registry cache %s has an unexpected shape: %s", store.path, e)
            return None
        if snapshot.format != SNAPSHOT_FORMAT:
            logger.debug("Registry cache %s has format %s, expected %s", store.path, snapshot.format, SNAPSHOT_FORMAT)
            return None
        return snapshot

    def hydrate(self) -> tuple[dict[str, ModuleDescriptor], Resolution] | None:
        """Rebuild descriptors and resolution, or None if any entry is malformed."""
        descriptors: dict[str, ModuleDescriptor] = {}
        try:
            for module_id, data in self.modules.items():
                descriptors[module_id] = ModuleDescriptor.from_dict(data)
            missing = [MissingOptional(**entry) for entry in self.missing_optional]
        except (KeyError, TypeError, ValueError, VersionParseError) as e:
            logger.debug("Registry cache entry is malformed: %s", e)
            return None
        if any(module_id not in descriptors for module_id in self.load_order):
            logger.debug("Registry cache load order names unknown modules")
            return None
        return descriptors, Resolution(order=list(self.load_order), missing_optional=missing)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
