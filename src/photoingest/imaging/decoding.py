"""Decode validated bytes into a single owned pixel buffer."""

from __future__ import annotations

import io
import logging
import warnings
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from photoingest.errors import DecodeError, ValidationError
from photoingest.imaging.formats import DetectedFormat
from photoingest.imaging.orientation import Orientation, read_orientation

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class DecodedImage:
    """Pixel buffer owned by exactly one holder.

    Orientation correction swaps ``image`` for the transformed buffer and
    closes the old one, so two live handles to the source never coexist.
    """

    image: Image.Image
    format: DetectedFormat
    orientation: Orientation | None = None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def has_alpha(self) -> bool:
        return self.format.supports_alpha

    def replace_image(self, new_image: Image.Image) -> None:
        if new_image is self.image:
            return
        old, self.image = self.image, new_image
        old.close()

    def close(self) -> None:
        self.image.close()


def _normalise_mode(image: Image.Image, fmt: DetectedFormat) -> Image.Image:
    target = "RGBA" if fmt.supports_alpha else "RGB"
    if image.mode == target:
        return image
    return image.convert(target)


def decode_image(data: bytes, fmt: DetectedFormat, *, max_pixels: int) -> DecodedImage:
    """Decode ``data`` as ``fmt`` only.

    Raises:
        ValidationError: The header announces more than ``max_pixels`` pixels.
        DecodeError: The decoder rejects the bytes or the image has no pixels.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            source = Image.open(io.BytesIO(data), formats=[fmt.pil_format])
    except (Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
        raise ValidationError("Image dimensions are too large", status=413) from exc
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"Failed to read {fmt.mime_type} image: {exc}") from exc

    try:
        width, height = source.size
        if width * height > max_pixels:
            raise ValidationError("Image dimensions are too large", status=413)
        if width == 0 or height == 0:
            raise DecodeError("Image has invalid dimensions")

        orientation = read_orientation(source) if fmt is DetectedFormat.JPEG else None
        try:
            source.load()
            pixels = _normalise_mode(source, fmt)
        except (OSError, SyntaxError, ValueError, MemoryError) as exc:
            raise DecodeError(f"Failed to read {fmt.mime_type} image. The file may be corrupted: {exc}") from exc
    except Exception:
        source.close()
        raise

    if pixels is not source:
        source.close()
    logger.debug("Decoded %s %dx%d (orientation=%s)", fmt.name, width, height, orientation)
    return DecodedImage(image=pixels, format=fmt, orientation=orientation)
