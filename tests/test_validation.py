"""Tests for upload validation and content sniffing."""

from __future__ import annotations

from pathlib import Path

import pytest

from photoingest.errors import UnsupportedFormatError, ValidationError
from photoingest.imaging.formats import DetectedFormat, detect_format, sniff_mime_type
from photoingest.imaging.validation import (
    TransportError,
    UploadedBlob,
    check_size,
    transport_error_message,
    validate_upload,
)

# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class TestTransportErrors:
    def test_ok_blob_passes(self) -> None:
        assert validate_upload(UploadedBlob.from_bytes(b"abc")) == b"abc"

    @pytest.mark.parametrize(
        ("error", "fragment"),
        [
            (TransportError.INI_SIZE, "maximum allowed size"),
            (TransportError.PARTIAL, "partially uploaded"),
            (TransportError.NO_FILE, "No file was uploaded"),
            (TransportError.NO_TMP_DIR, "missing temporary directory"),
            (TransportError.CANT_WRITE, "failed to write file to disk"),
            (TransportError.EXTENSION, "blocked by server extension"),
        ],
    )
    def test_each_transport_error_has_its_message(self, error: TransportError, fragment: str) -> None:
        with pytest.raises(ValidationError, match=fragment):
            validate_upload(UploadedBlob(error=error, data=b"abc"))

    def test_transport_messages_are_distinct(self) -> None:
        distinct = {
            transport_error_message(error)
            for error in (
                TransportError.INI_SIZE,
                TransportError.PARTIAL,
                TransportError.NO_FILE,
                TransportError.NO_TMP_DIR,
                TransportError.CANT_WRITE,
                TransportError.EXTENSION,
            )
        }
        assert len(distinct) == 6

    def test_unknown_code_gets_generic_message(self) -> None:
        assert transport_error_message(99) == "Unknown upload error"

    def test_declared_size_mismatch_is_partial(self) -> None:
        blob = UploadedBlob.from_bytes(b"abc", declared_size=10)
        assert blob.error is TransportError.PARTIAL
        with pytest.raises(ValidationError, match="partially"):
            validate_upload(blob)

    def test_missing_blob(self) -> None:
        with pytest.raises(ValidationError, match="No file was uploaded"):
            validate_upload(UploadedBlob.missing())


class TestProvenance:
    def test_no_source_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid file upload"):
            validate_upload(UploadedBlob())

    def test_both_sources_rejected(self, tmp_path: Path) -> None:
        spooled = tmp_path / "upload.bin"
        spooled.write_bytes(b"abc")
        with pytest.raises(ValidationError, match="Invalid file upload"):
            validate_upload(UploadedBlob(data=b"abc", spool_path=spooled), upload_tmp_dir=tmp_path)

    def test_spooled_file_inside_tmp_dir_accepted(self, tmp_path: Path) -> None:
        spooled = tmp_path / "phpA1b2C3"
        spooled.write_bytes(b"payload")
        assert validate_upload(UploadedBlob(spool_path=spooled), upload_tmp_dir=tmp_path) == b"payload"

    def test_spooled_path_outside_tmp_dir_rejected(self, tmp_path: Path) -> None:
        spool_dir = tmp_path / "spool"
        spool_dir.mkdir()
        outside = tmp_path / "secret.txt"
        outside.write_bytes(b"secret")
        with pytest.raises(ValidationError, match="Invalid file upload"):
            validate_upload(UploadedBlob(spool_path=outside), upload_tmp_dir=spool_dir)

    def test_traversal_out_of_tmp_dir_rejected(self, tmp_path: Path) -> None:
        spool_dir = tmp_path / "spool"
        spool_dir.mkdir()
        (tmp_path / "secret.txt").write_bytes(b"secret")
        injected = spool_dir / ".." / "secret.txt"
        with pytest.raises(ValidationError, match="Invalid file upload"):
            validate_upload(UploadedBlob(spool_path=injected), upload_tmp_dir=spool_dir)

    def test_symlink_in_tmp_dir_rejected(self, tmp_path: Path) -> None:
        spool_dir = tmp_path / "spool"
        spool_dir.mkdir()
        target = tmp_path / "secret.txt"
        target.write_bytes(b"secret")
        link = spool_dir / "upload"
        link.symlink_to(target)
        with pytest.raises(ValidationError, match="Invalid file upload"):
            validate_upload(UploadedBlob(spool_path=link), upload_tmp_dir=spool_dir)

    def test_spooled_upload_without_tmp_dir_rejected(self, tmp_path: Path) -> None:
        spooled = tmp_path / "upload.bin"
        spooled.write_bytes(b"abc")
        with pytest.raises(ValidationError, match="Invalid file upload"):
            validate_upload(UploadedBlob(spool_path=spooled))


class TestSizeLimits:
    def test_empty_upload_rejected(self) -> None:
        with pytest.raises(ValidationError, match="empty"):
            validate_upload(UploadedBlob.from_bytes(b""))

    def test_oversized_upload_rejected_with_413(self) -> None:
        with pytest.raises(ValidationError, match=r"maximum of 0 MB") as excinfo:
            validate_upload(UploadedBlob.from_bytes(b"x" * 11), max_size=10)
        assert excinfo.value.status == 413

    def test_default_limit_is_ten_mib(self) -> None:
        with pytest.raises(ValidationError, match=r"^File size exceeds the maximum of 10 MB$"):
            validate_upload(UploadedBlob.from_bytes(b"x" * (10 * 1024 * 1024 + 1)))

    def test_fractional_limit_keeps_one_decimal(self) -> None:
        with pytest.raises(ValidationError, match=r"maximum of 5\.5 MB$"):
            check_size(5_767_169, 5_767_168)

    def test_exact_limit_accepted(self) -> None:
        assert len(validate_upload(UploadedBlob.from_bytes(b"x" * 10), max_size=10)) == 10

    def test_oversized_spooled_file_rejected_before_read(self, tmp_path: Path) -> None:
        spooled = tmp_path / "big.bin"
        spooled.write_bytes(b"x" * 11)
        with pytest.raises(ValidationError) as excinfo:
            validate_upload(UploadedBlob(spool_path=spooled), max_size=10, upload_tmp_dir=tmp_path)
        assert excinfo.value.status == 413


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------


class TestFormatDetection:
    def test_detects_supported_formats(self, jpeg_bytes: bytes, png_bytes: bytes, webp_bytes: bytes) -> None:
        assert detect_format(jpeg_bytes) is DetectedFormat.JPEG
        assert detect_format(png_bytes) is DetectedFormat.PNG
        assert detect_format(webp_bytes) is DetectedFormat.WEBP

    def test_gif_rejected_and_named(self, gif_bytes: bytes) -> None:
        with pytest.raises(UnsupportedFormatError, match="image/gif"):
            detect_format(gif_bytes)

    def test_unknown_bytes_rejected(self) -> None:
        with pytest.raises(UnsupportedFormatError, match="application/octet-stream"):
            detect_format(b"MZ\x90\x00 not an image at all")

    def test_error_lists_accepted_types(self, gif_bytes: bytes) -> None:
        with pytest.raises(UnsupportedFormatError, match="image/jpeg, image/png, image/webp"):
            detect_format(gif_bytes)

    def test_allow_list_is_honoured(self, webp_bytes: bytes) -> None:
        with pytest.raises(UnsupportedFormatError, match="image/webp"):
            detect_format(webp_bytes, allowed={DetectedFormat.JPEG, DetectedFormat.PNG})

    def test_riff_without_webp_marker_is_not_webp(self) -> None:
        assert sniff_mime_type(b"RIFF\x24\x00\x00\x00WAVEfmt ") is None

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (b"BM\x00\x00", "image/bmp"),
            (b"II*\x00\x08\x00", "image/tiff"),
            (b"\x00\x00\x00\x18ftypheic\x00\x00", "image/heic"),
            (b"\x00\x00\x00\x1cftypavif\x00\x00", "image/avif"),
            (b"%PDF-1.7", "application/pdf"),
        ],
    )
    def test_rejected_types_are_recognised(self, data: bytes, expected: str) -> None:
        assert sniff_mime_type(data) == expected

    def test_format_metadata(self) -> None:
        assert DetectedFormat.JPEG.extension == "jpg"
        assert DetectedFormat.JPEG.supports_alpha is False
        assert DetectedFormat.PNG.supports_alpha is True
        assert DetectedFormat.WEBP.mime_type == "image/webp"
