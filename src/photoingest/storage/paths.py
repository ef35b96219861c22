"""Filename generation and the staging / production directory layout.

A main file and its derivatives share one stem; ``thumb_`` and ``card_``
prefixes are the only link between them. Names are unique only
probabilistically (second timestamp plus four random bytes), there is no
locking between concurrent uploads of the same uploader.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from photoingest.errors import StorageError
from photoingest.imaging.geometry import DERIVATIVES, Variant

if TYPE_CHECKING:
    from collections.abc import Callable

    from photoingest.config import Settings
    from photoingest.imaging.formats import DetectedFormat

logger = logging.getLogger(__name__)

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def generate_stem(clock: Callable[[], float] = time.time) -> str:
    """``<unix seconds>_<8 hex chars>``."""
    return f"{int(clock())}_{secrets.token_hex(4)}"


def variant_filename(main_filename: str, variant: Variant) -> str:
    return f"{variant.prefix}{main_filename}"


def is_derivative_filename(filename: str) -> bool:
    return any(filename.startswith(variant.prefix) for variant in DERIVATIVES)


@dataclass(frozen=True)
class StorageLayout:
    """Maps between web-relative staged paths, production-relative paths and the filesystem."""

    staging_root: Path
    staging_url_prefix: str
    production_root: Path

    @classmethod
    def from_settings(cls, settings: Settings) -> StorageLayout:
        return cls(
            staging_root=Path(settings.staging_root).resolve(),
            staging_url_prefix="/" + settings.staging_url_prefix.strip("/"),
            production_root=Path(settings.production_root).resolve(),
        )

    def staging_dir(self, uploader_id: str) -> Path:
        return self.staging_root / uploader_id

    def staged_url(self, uploader_id: str, filename: str) -> str:
        return f"{self.staging_url_prefix}/{uploader_id}/{filename}"

    def resolve_staged(self, staged_path: str) -> Path | None:
        """Filesystem path of a web-relative staged path, or None if it is not one."""
        prefix = self.staging_url_prefix + "/"
        if not staged_path.startswith(prefix):
            return None
        return self._within(self.staging_root, staged_path[len(prefix) :])

    def resolve(self, path: str) -> Path | None:
        """Absolute path for a staged, production-relative or absolute path.

        Returns None for anything that would land outside both roots.
        """
        staged = self.resolve_staged(path)
        if staged is not None:
            return staged

        candidate = Path(path)
        if candidate.is_absolute():
            resolved = candidate.resolve()
            for root in (self.staging_root, self.production_root):
                if resolved.is_relative_to(root) and resolved != root:
                    return resolved
            return None
        return self._within(self.production_root, path)

    @staticmethod
    def _within(root: Path, relative: str) -> Path | None:
        parts = PurePosixPath(relative.strip("/")).parts
        if not parts or any(part in ("..", ".") for part in parts):
            return None
        resolved = root.joinpath(*parts).resolve()
        if not resolved.is_relative_to(root) or resolved == root:
            return None
        return resolved


@dataclass(frozen=True)
class StagedNames:
    """Where the three files of one upload go inside the staging area."""

    directory: Path
    uploader_id: str
    stem: str
    extension: str

    @property
    def main_filename(self) -> str:
        return f"{self.stem}.{self.extension}"

    def filename(self, variant: Variant) -> str:
        return variant_filename(self.main_filename, variant)

    def path(self, variant: Variant) -> Path:
        return self.directory / self.filename(variant)


class PathAllocator:
    """Allocates staged filenames and creates per-uploader staging directories."""

    def __init__(self, layout: StorageLayout, clock: Callable[[], float] = time.time) -> None:
        self._layout = layout
        self._clock = clock

    @property
    def layout(self) -> StorageLayout:
        return self._layout

    def allocate(self, uploader_id: str | int, fmt: DetectedFormat) -> StagedNames:
        """Create ``staging_root/<uploader_id>/`` (idempotently) and pick a fresh stem.

        Raises:
            ValueError: ``uploader_id`` is not a single safe path segment.
            StorageError: The directory cannot be created.
        """
        uploader = str(uploader_id)
        if not _SAFE_SEGMENT.match(uploader):
            raise ValueError(f"Invalid uploader id: {uploader!r}")

        directory = self._layout.staging_dir(uploader)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create upload directory {directory}: {exc}") from exc

        return StagedNames(
            directory=directory,
            uploader_id=uploader,
            stem=generate_stem(self._clock),
            extension=fmt.extension,
        )

    def web_path(self, names: StagedNames, variant: Variant) -> str:
        return self._layout.staged_url(names.uploader_id, names.filename(variant))
