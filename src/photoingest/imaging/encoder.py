"""Serialise derivative buffers in the upload's own format.

Every derivative is drawn onto a freshly allocated canvas and saved without
``exif`` / ``icc_profile`` arguments. That re-encoding is what strips
embedded metadata from all three files.
"""

from __future__ import annotations

import io
import logging
from typing import Any

from PIL import Image

from photoingest.errors import EncodeError
from photoingest.imaging.formats import DetectedFormat

logger = logging.getLogger(__name__)

JPEG_QUALITY = 85
WEBP_QUALITY = 80
PNG_COMPRESSION = 6

TRANSPARENT = (0, 0, 0, 0)


def save_options(fmt: DetectedFormat) -> dict[str, Any]:
    if fmt is DetectedFormat.JPEG:
        return {"quality": JPEG_QUALITY}
    if fmt is DetectedFormat.WEBP:
        return {"quality": WEBP_QUALITY}
    return {"compress_level": PNG_COMPRESSION}


def transparent_canvas(size: tuple[int, int]) -> Image.Image:
    """RGBA canvas whose every pixel is fully transparent.

    Allocation writes raw RGBA values with no blending, so the alpha channel
    is kept and the fill is exact. Pixels composited afterwards are blended
    over it, which keeps semi-transparent edges from resampling intact.
    """
    return Image.new("RGBA", size, TRANSPARENT)


def compose(image: Image.Image, fmt: DetectedFormat) -> Image.Image:
    """Draw ``image`` onto a new canvas suited to ``fmt``."""
    if fmt.supports_alpha:
        canvas = transparent_canvas(image.size)
        pixels = image if image.mode == "RGBA" else image.convert("RGBA")
        canvas.alpha_composite(pixels)
        return canvas

    canvas = Image.new("RGB", image.size)
    canvas.paste(image if image.mode == "RGB" else image.convert("RGB"))
    return canvas


def encode(image: Image.Image, fmt: DetectedFormat) -> bytes:
    """Return ``image`` encoded as ``fmt`` with the fixed quality settings.

    Raises:
        EncodeError: If the encoder fails.
    """
    buffer = io.BytesIO()
    try:
        canvas = compose(image, fmt)
        try:
            canvas.save(buffer, format=fmt.pil_format, **save_options(fmt))
        finally:
            canvas.close()
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"Failed to encode {fmt.mime_type} image: {exc}") from exc
    return buffer.getvalue()
