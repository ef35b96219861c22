"""Promotion of a staged asset into permanent storage.

The main file move must succeed; the ``thumb_`` and ``card_`` siblings follow
on a best-effort basis and a failed sibling never rolls the main file back.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

from photoingest.errors import NotFoundError, StorageError
from photoingest.imaging.geometry import DERIVATIVES, Variant
from photoingest.storage.outcomes import FileOutcome, FileStatus, all_ok
from photoingest.storage.paths import is_derivative_filename, variant_filename

if TYPE_CHECKING:
    from collections.abc import Mapping

    from photoingest.storage.paths import StorageLayout

logger = logging.getLogger(__name__)

_SCHEME_AND_HOST = re.compile(r"^https?://[^/]+/", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Subject repository
# ---------------------------------------------------------------------------


class SubjectRepository(Protocol):
    """Source of canonical paths for promotion subjects."""

    def lookup(self, subject_id: str) -> str | None:
        """Return the subject's canonical path, or None if unknown or unset."""
        ...


class InMemorySubjectRepository:
    def __init__(self, paths: Mapping[str | int, str] | None = None) -> None:
        self._paths = {str(key): value for key, value in (paths or {}).items()}

    def lookup(self, subject_id: str) -> str | None:
        return self._paths.get(str(subject_id))

    def set(self, subject_id: str | int, canonical_path: str) -> None:
        self._paths[str(subject_id)] = canonical_path


class JsonFileSubjectRepository:
    """Reads a JSON object ``{"<subject id>": "<canonical path>"}`` on every lookup."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def lookup(self, subject_id: str) -> str | None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Subjects file %s does not exist", self._path)
            return None
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read subjects file {self._path}: {exc}") from exc
        value = data.get(str(subject_id)) if isinstance(data, dict) else None
        return value if isinstance(value, str) else None


def canonical_segment(canonical_path: str) -> str | None:
    """Filesystem-relative segment of a canonical path.

    ``https://www.example.org/art/music/name/`` becomes ``art/music/name``.
    Returns None when nothing usable is left.
    """
    segment = _SCHEME_AND_HOST.sub("", canonical_path.strip()).strip("/")
    if not segment:
        return None
    parts = PurePosixPath(segment).parts
    if any(part in ("..", ".") for part in parts):
        return None
    return "/".join(parts)


# ---------------------------------------------------------------------------
# Promoter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PromotionResult:
    production_path: str
    files: tuple[FileOutcome, ...]

    @property
    def complete(self) -> bool:
        return all_ok(self.files)


def move_file(source: Path, destination: Path) -> None:
    """Rename ``source`` to ``destination``, copying then unlinking when rename fails."""
    try:
        source.rename(destination)
        return
    except OSError as exc:
        logger.debug("Rename %s -> %s failed (%s), falling back to copy", source, destination, exc)
    shutil.copy2(source, destination)
    try:
        source.unlink()
    except OSError as exc:
        logger.warning("Copied %s to %s but could not remove the source: %s", source, destination, exc)


class ProductionPromoter:
    """Moves a staged main file and its derivatives under ``production_root/<segment>/``."""

    def __init__(self, layout: StorageLayout, subjects: SubjectRepository) -> None:
        self._layout = layout
        self._subjects = subjects

    def promote(self, staged_path: str, subject_id: str | int) -> PromotionResult:
        """Promote ``staged_path`` for ``subject_id``.

        Raises:
            NotFoundError: Unknown subject, subject without canonical path, or
                staged file missing.
            StorageError: Production directory or main file move failed.
        """
        canonical = self._subjects.lookup(str(subject_id))
        segment = canonical_segment(canonical) if canonical else None
        if segment is None:
            raise NotFoundError(f"Subject not found or has no canonical path: {subject_id}")

        # Only staged main files; promoted assets and derivatives are never moved on their own.
        source = self._layout.resolve_staged(staged_path)
        if source is None or is_derivative_filename(source.name) or not source.is_file():
            raise NotFoundError(f"Staged file not found: {staged_path}")

        production_dir = self._layout.production_root.joinpath(*segment.split("/"))
        try:
            production_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create production directory {production_dir}: {exc}") from exc

        filename = source.name
        try:
            move_file(source, production_dir / filename)
        except OSError as exc:
            raise StorageError(f"Failed to move {source} to {production_dir}: {exc}") from exc

        outcomes = [FileOutcome(Variant.MAIN, filename, FileStatus.MOVED)]
        for variant in DERIVATIVES:
            outcomes.append(self._move_sibling(source.parent, production_dir, filename, variant))

        result = PromotionResult(production_path=f"{segment}/{filename}", files=tuple(outcomes))
        logger.info(
            "Promoted %s to %s (complete=%s)",
            staged_path,
            result.production_path,
            result.complete,
        )
        return result

    @staticmethod
    def _move_sibling(source_dir: Path, production_dir: Path, filename: str, variant: Variant) -> FileOutcome:
        sibling_name = variant_filename(filename, variant)
        sibling = source_dir / sibling_name
        if not sibling.is_file():
            return FileOutcome(variant, sibling_name, FileStatus.MISSING)
        try:
            move_file(sibling, production_dir / sibling_name)
        except OSError as exc:
            logger.warning("Could not move %s to %s: %s", sibling, production_dir, exc)
            return FileOutcome(variant, sibling_name, FileStatus.FAILED, str(exc))
        return FileOutcome(variant, sibling_name, FileStatus.MOVED)
