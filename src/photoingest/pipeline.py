"""End-to-end processing of one upload into three staged files.

Validator -> format sniffing -> decode -> orientation -> geometry -> encode
-> write. The whole run is synchronous and blocking; there is no
cancellation and no timeout.

Partial failure policy: all three files are encoded in memory before the
first write, so decode and encode failures leave nothing behind. If a write
fails part way, the files already written are deleted, unless
``keep_partial_uploads`` is set, in which case they are left for inspection
and external cleanup.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from photoingest.errors import StorageError
from photoingest.imaging.decoding import decode_image
from photoingest.imaging.encoder import encode
from photoingest.imaging.formats import ALL_FORMATS, detect_format
from photoingest.imaging.geometry import Variant, render_variant
from photoingest.imaging.orientation import correct_orientation
from photoingest.imaging.validation import validate_upload
from photoingest.storage.paths import PathAllocator, StorageLayout

if TYPE_CHECKING:
    from pathlib import Path

    from photoingest.config import Settings
    from photoingest.imaging.decoding import DecodedImage
    from photoingest.imaging.formats import DetectedFormat
    from photoingest.imaging.validation import UploadedBlob
    from photoingest.storage.paths import StagedNames

logger = logging.getLogger(__name__)

VARIANTS: tuple[Variant, ...] = (Variant.MAIN, Variant.THUMB, Variant.CARD)


@dataclass(frozen=True)
class EncodedVariant:
    variant: Variant
    data: bytes
    width: int
    height: int


@dataclass(frozen=True)
class UploadResult:
    """Staged asset description handed back to the submission workflow."""

    file_name: str
    file_path: str
    file_size_bytes: int
    mime_type: str
    width: int
    height: int
    thumb_path: str
    card_path: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def render_variants(decoded: DecodedImage) -> list[EncodedVariant]:
    """Resize, crop and encode the three derivatives of ``decoded``.

    The source buffer is shared read-only by the three renders.
    """
    source = decoded.image
    encoded: list[EncodedVariant] = []
    for variant in VARIANTS:
        rendered = render_variant(source, variant)
        try:
            encoded.append(
                EncodedVariant(
                    variant=variant,
                    data=encode(rendered, decoded.format),
                    width=rendered.width,
                    height=rendered.height,
                )
            )
        finally:
            if rendered is not source:
                rendered.close()
    return encoded


def _write_all(names: StagedNames, encoded: list[EncodedVariant], *, keep_partial: bool) -> None:
    written: list[Path] = []
    for item in encoded:
        target = names.path(item.variant)
        try:
            target.write_bytes(item.data)
        except OSError as exc:
            if keep_partial:
                logger.error("Write of %s failed, leaving %d partial file(s) in place", target, len(written))
            else:
                for path in written:
                    path.unlink(missing_ok=True)
                target.unlink(missing_ok=True)
            raise StorageError(f"Failed to save image {target}: {exc}") from exc
        written.append(target)


class UploadProcessor:
    """Runs the pipeline against one storage layout."""

    def __init__(
        self,
        settings: Settings,
        allocator: PathAllocator | None = None,
        allowed_formats: frozenset[DetectedFormat] = ALL_FORMATS,
    ) -> None:
        self._settings = settings
        self._allocator = allocator or PathAllocator(StorageLayout.from_settings(settings))
        self._allowed_formats = allowed_formats

    @property
    def layout(self) -> StorageLayout:
        return self._allocator.layout

    def process(self, blob: UploadedBlob, uploader_id: str | int) -> UploadResult:
        """Validate, derive and stage one upload.

        Raises:
            ValidationError, UnsupportedFormatError: Client-caused rejection.
            DecodeError, EncodeError, StorageError: Corrupt input or environment failure.
        """
        data = validate_upload(
            blob,
            max_size=self._settings.max_file_size,
            upload_tmp_dir=self._settings.upload_tmp_dir,
        )
        fmt = detect_format(data, self._allowed_formats)

        decoded = decode_image(data, fmt, max_pixels=self._settings.max_image_pixels)
        try:
            correct_orientation(decoded)
            encoded = render_variants(decoded)
        finally:
            decoded.close()

        names = self._allocator.allocate(uploader_id, fmt)
        _write_all(names, encoded, keep_partial=self._settings.keep_partial_uploads)

        main = encoded[0]
        result = UploadResult(
            file_name=names.main_filename,
            file_path=self._allocator.web_path(names, Variant.MAIN),
            file_size_bytes=len(main.data),
            mime_type=fmt.mime_type,
            width=main.width,
            height=main.height,
            thumb_path=self._allocator.web_path(names, Variant.THUMB),
            card_path=self._allocator.web_path(names, Variant.CARD),
        )
        logger.info(
            "Staged %s for uploader %s (%s, %dx%d, %d bytes)",
            result.file_name,
            names.uploader_id,
            fmt.mime_type,
            result.width,
            result.height,
            result.file_size_bytes,
        )
        return result


def process_upload(
    blob: UploadedBlob,
    uploader_id: str | int,
    settings: Settings,
    *,
    allocator: PathAllocator | None = None,
) -> UploadResult:
    return UploadProcessor(settings, allocator=allocator).process(blob, uploader_id)
