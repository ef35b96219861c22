"""Content sniffing: the real format of an upload comes from its bytes.

The client-declared MIME type and the filename extension are never consulted.
The detected format is also the output format of every derivative.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from photoingest.errors import UnsupportedFormatError


class DetectedFormat(Enum):
    """Raster formats accepted by the pipeline."""

    JPEG = ("image/jpeg", "jpg", "JPEG", False)
    PNG = ("image/png", "png", "PNG", True)
    WEBP = ("image/webp", "webp", "WEBP", True)

    def __init__(self, mime_type: str, extension: str, pil_format: str, supports_alpha: bool) -> None:
        self.mime_type = mime_type
        self.extension = extension
        self.pil_format = pil_format
        self.supports_alpha = supports_alpha

    @classmethod
    def from_mime_type(cls, mime_type: str) -> DetectedFormat | None:
        for fmt in cls:
            if fmt.mime_type == mime_type:
                return fmt
        return None


ALL_FORMATS: frozenset[DetectedFormat] = frozenset(DetectedFormat)

# Prefix signatures. Formats we reject are listed too, so the error names them.
_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"\x00\x00\x01\x00", "image/vnd.microsoft.icon"),
    (b"%PDF-", "application/pdf"),
)

_ISOBMFF_BRANDS: dict[bytes, str] = {
    b"heic": "image/heic",
    b"heix": "image/heic",
    b"mif1": "image/heif",
    b"avif": "image/avif",
}


def sniff_mime_type(data: bytes) -> str | None:
    """Return the MIME type implied by the leading bytes, or None if unknown."""
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if len(data) >= 12 and data[4:8] == b"ftyp":
        brand = _ISOBMFF_BRANDS.get(data[8:12])
        if brand is not None:
            return brand
    for magic, mime_type in _SIGNATURES:
        if data.startswith(magic):
            return mime_type
    return None


def detect_format(data: bytes, allowed: Iterable[DetectedFormat] = ALL_FORMATS) -> DetectedFormat:
    """Sniff ``data`` and return its format if it is in ``allowed``.

    Raises:
        UnsupportedFormatError: For any other sniffed type, including valid
            images in formats outside the allow-list.
    """
    allowed = frozenset(allowed)
    mime_type = sniff_mime_type(data)
    fmt = DetectedFormat.from_mime_type(mime_type) if mime_type else None
    if fmt is None or fmt not in allowed:
        accepted = ", ".join(f.mime_type for f in DetectedFormat if f in allowed)
        detected = mime_type or "application/octet-stream"
        raise UnsupportedFormatError(f"File type '{detected}' is not allowed. Accepted types: {accepted}")
    return fmt
