"""Idempotent removal of an asset and its derivatives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from photoingest.imaging.geometry import DERIVATIVES, Variant
from photoingest.storage.outcomes import FileOutcome, FileStatus, all_ok
from photoingest.storage.paths import variant_filename

if TYPE_CHECKING:
    from pathlib import Path

    from photoingest.storage.paths import StorageLayout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeletionResult:
    files: tuple[FileOutcome, ...]
    directory_removed: bool = False

    @property
    def complete(self) -> bool:
        return all_ok(self.files)


def _remove(path: Path, variant: Variant) -> FileOutcome:
    try:
        path.unlink()
    except FileNotFoundError:
        return FileOutcome(variant, path.name, FileStatus.MISSING)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)
        return FileOutcome(variant, path.name, FileStatus.FAILED, str(exc))
    return FileOutcome(variant, path.name, FileStatus.REMOVED)


def _remove_if_empty(directory: Path) -> bool:
    try:
        if any(directory.iterdir()):
            return False
        directory.rmdir()
    except OSError as exc:
        logger.warning("Could not remove empty directory %s: %s", directory, exc)
        return False
    return True


def delete_asset(path: str, layout: StorageLayout) -> DeletionResult:
    """Delete the file at ``path`` plus its ``thumb_`` / ``card_`` siblings.

    Accepts staged web paths, production-relative paths and absolute paths
    inside either root. Never raises: a missing main file or a path outside
    the roots is a no-op.
    """
    try:
        target = layout.resolve(path)
    except (OSError, RuntimeError, ValueError) as exc:
        logger.warning("Ignoring delete of unresolvable path %r: %s", path, exc)
        return DeletionResult(files=())
    if target is None:
        logger.warning("Ignoring delete of path outside storage roots: %s", path)
        return DeletionResult(files=())
    if not target.is_file():
        return DeletionResult(files=(FileOutcome(Variant.MAIN, target.name, FileStatus.MISSING),))

    outcomes = [_remove(target, Variant.MAIN)]
    for variant in DERIVATIVES:
        outcomes.append(_remove(target.parent / variant_filename(target.name, variant), variant))

    directory_removed = False
    if target.parent not in (layout.staging_root, layout.production_root):
        directory_removed = _remove_if_empty(target.parent)
    result = DeletionResult(files=tuple(outcomes), directory_removed=directory_removed)
    logger.info("Deleted %s (complete=%s, directory_removed=%s)", path, result.complete, directory_removed)
    return result
