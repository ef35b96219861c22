"""EXIF orientation normalisation for JPEG uploads.

Correction is best-effort: if a transform fails the untransformed buffer is
kept and the upload carries on.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import TYPE_CHECKING

from PIL import ExifTags, Image

from photoingest.imaging.formats import DetectedFormat

if TYPE_CHECKING:
    from photoingest.imaging.decoding import DecodedImage

logger = logging.getLogger(__name__)

ORIENTATION_TAG = ExifTags.Base.Orientation


class Orientation(IntEnum):
    """EXIF orientation values: how stored pixels map to the upright picture."""

    NORMAL = 1
    MIRROR_HORIZONTAL = 2
    ROTATE_180 = 3
    MIRROR_VERTICAL = 4
    MIRROR_HORIZONTAL_ROTATE_270 = 5
    ROTATE_90 = 6
    MIRROR_HORIZONTAL_ROTATE_90 = 7
    ROTATE_270 = 8

    @classmethod
    def from_tag(cls, value: object) -> Orientation | None:
        """Parse a raw tag value; None when absent or not a known orientation."""
        if value is None:
            return None
        try:
            return cls(int(value))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return None

    @property
    def swaps_dimensions(self) -> bool:
        return self in _SWAPPING


_SWAPPING = frozenset(
    {
        Orientation.MIRROR_HORIZONTAL_ROTATE_270,
        Orientation.ROTATE_90,
        Orientation.MIRROR_HORIZONTAL_ROTATE_90,
        Orientation.ROTATE_270,
    }
)


def read_orientation(image: Image.Image) -> Orientation | None:
    """Return the orientation stored in the image's EXIF block, if parseable."""
    try:
        value = image.getexif().get(ORIENTATION_TAG)
    except (OSError, SyntaxError, ValueError, TypeError) as exc:
        logger.warning("Unreadable EXIF block, ignoring orientation: %s", exc)
        return None
    return Orientation.from_tag(value)


def apply_orientation(image: Image.Image, orientation: Orientation | None) -> Image.Image:
    """Return ``image`` transformed so it displays upright.

    Rotations are counter-clockwise for positive angles, so "rotate -90" is a
    quarter turn clockwise. Orientation 1, None and unknown values return the
    input object unchanged.
    """
    match orientation:
        case Orientation.MIRROR_HORIZONTAL:
            return image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        case Orientation.ROTATE_180:
            return image.transpose(Image.Transpose.ROTATE_180)
        case Orientation.MIRROR_VERTICAL:
            return image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
        case Orientation.MIRROR_HORIZONTAL_ROTATE_270:
            return image.transpose(Image.Transpose.ROTATE_270).transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        case Orientation.ROTATE_90:
            return image.transpose(Image.Transpose.ROTATE_270)
        case Orientation.MIRROR_HORIZONTAL_ROTATE_90:
            return image.transpose(Image.Transpose.ROTATE_90).transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        case Orientation.ROTATE_270:
            return image.transpose(Image.Transpose.ROTATE_90)
        case _:
            return image


def correct_orientation(decoded: DecodedImage) -> DecodedImage:
    """Normalise a decoded JPEG to upright in place.

    Non-JPEG images, a missing tag and orientation 1 are left alone. Callers
    must read ``decoded.width`` / ``decoded.height`` again afterwards.
    """
    if decoded.format is not DetectedFormat.JPEG:
        return decoded
    orientation = decoded.orientation
    if orientation is None or orientation is Orientation.NORMAL:
        return decoded

    try:
        corrected = apply_orientation(decoded.image, orientation)
    except (OSError, ValueError, MemoryError) as exc:
        logger.warning("Orientation %d could not be applied, keeping stored pixels: %s", orientation, exc)
        return decoded

    decoded.replace_image(corrected)
    decoded.orientation = Orientation.NORMAL
    logger.debug("Applied orientation %d -> %dx%d", orientation, decoded.width, decoded.height)
    return decoded
