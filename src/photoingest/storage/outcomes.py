"""Per-file results of multi-file moves and deletions.

Promotion and deletion touch three files without a transaction. Each file
reports its own outcome; callers decide whether partial success is acceptable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from photoingest.imaging.geometry import Variant


class FileStatus(StrEnum):
    MOVED = "moved"
    REMOVED = "removed"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(frozen=True)
class FileOutcome:
    variant: Variant
    filename: str
    status: FileStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not FileStatus.FAILED


def all_ok(outcomes: tuple[FileOutcome, ...]) -> bool:
    return all(outcome.ok for outcome in outcomes)
