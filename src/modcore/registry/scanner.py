"""Directory scanner for discovering installed modules."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from modcore.errors import DuplicateModuleError
from modcore.registry.metadata import DESCRIPTOR_FILE, legacy_marker_name, load_descriptor
from modcore.registry.types import ModuleDescriptor

logger = logging.getLogger(__name__)

__all__ = ["compute_fingerprint", "scan_modules", "still_resolves"]

_SKIP_DIR_NAMES = {"__pycache__", "node_modules"}


def _candidate_dirs(root: Path) -> list[Path]:
    """Immediate subdirectories of ``root`` that may hold a module, sorted by name."""
    try:
        entries = list(os.scandir(root))
    except PermissionError as e:
        logger.error("Permission denied scanning %s: %s", root, e)
        return []
    except OSError as e:
        logger.error("OS error scanning %s: %s", root, e)
        return []

    dirs: list[Path] = []
    for entry in entries:
        name = entry.name
        if name.startswith(".") or name.startswith("_") or name in _SKIP_DIR_NAMES:
            continue
        try:
            if not entry.is_dir():
                continue
        except OSError as e:
            logger.error("OS error accessing %s: %s", entry.path, e)
            continue
        dirs.append(Path(entry.path))
    return sorted(dirs, key=lambda p: p.name)


def scan_modules(root: Path, descriptor_name: str = DESCRIPTOR_FILE) -> list[ModuleDescriptor]:
    """Scan a modules directory and build a descriptor for every module in it.

    A missing root yields no modules.

    Raises:
        DuplicateModuleError: If two directories declare the same module id.
        InvalidDescriptorError: If a descriptor file is malformed.
    """
    root = Path(root)
    if not root.is_dir():
        logger.info("Modules directory %s does not exist, no modules discovered", root)
        return []

    results: list[ModuleDescriptor] = []
    seen: dict[str, Path] = {}
    for module_dir in _candidate_dirs(root):
        descriptor = load_descriptor(module_dir, descriptor_name)
        if descriptor is None:
            logger.debug("Skipping %s: no %s or legacy marker", module_dir, descriptor_name)
            continue
        if descriptor.module_id in seen:
            raise DuplicateModuleError(
                module_id=descriptor.module_id,
                locations=[str(seen[descriptor.module_id]), str(module_dir)],
            )
        seen[descriptor.module_id] = module_dir
        results.append(descriptor)
    return results


def compute_fingerprint(root: Path, descriptor_name: str = DESCRIPTOR_FILE) -> str:
    """Freshness signal for a modules directory.

    Hashes the modification times of the root, every candidate directory,
    and every descriptor or legacy marker file inside them. Any addition,
    removal or edit changes the result.
    """
    root = Path(root)
    digest = hashlib.sha1()
    if not root.is_dir():
        digest.update(b"<missing>")
        return digest.hexdigest()

    digest.update(f"{root.stat().st_mtime_ns}".encode())
    for module_dir in _candidate_dirs(root):
        digest.update(f"{module_dir.name}:{module_dir.stat().st_mtime_ns}".encode())
        for name in (descriptor_name, legacy_marker_name(module_dir.name)):
            path = module_dir / name
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            digest.update(f"{module_dir.name}/{name}:{stat.st_mtime_ns}:{stat.st_size}".encode())
    return digest.hexdigest()


def still_resolves(descriptor: ModuleDescriptor, descriptor_name: str = DESCRIPTOR_FILE) -> bool:
    """Whether a cached descriptor still points at an installed module."""
    if not descriptor.location.is_dir():
        return False
    if descriptor.source is not None and descriptor.source.is_file():
        return True
    return (descriptor.location / descriptor_name).is_file() or (
        descriptor.location / legacy_marker_name(descriptor.location.name)
    ).is_file()
