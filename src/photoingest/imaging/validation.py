"""Upload validation: transport status, provenance and size, before any decoding."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from photoingest.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 10_485_760


class TransportError(IntEnum):
    """Status reported by the upload transport, numbered like multipart upload error codes."""

    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


_TRANSPORT_MESSAGES: dict[TransportError, str] = {
    TransportError.INI_SIZE: "File exceeds the maximum allowed size",
    TransportError.FORM_SIZE: "File exceeds the maximum allowed size",
    TransportError.PARTIAL: "File was only partially uploaded",
    TransportError.NO_FILE: "No file was uploaded",
    TransportError.NO_TMP_DIR: "Server configuration error: missing temporary directory",
    TransportError.CANT_WRITE: "Server error: failed to write file to disk",
    TransportError.EXTENSION: "File upload blocked by server extension",
}


@dataclass(frozen=True)
class UploadedBlob:
    """One uploaded file as handed over by the transport.

    ``filename`` and ``content_type`` come from the client and are never
    trusted. Exactly one of ``data`` (received in memory) and ``spool_path``
    (written to disk by an upstream proxy) is expected.

    ``declared_size`` is the length the client announced, for transports that
    carry one. It is left unset for multipart form uploads, where the only
    count available is the number of bytes the server actually received.
    """

    filename: str | None = None
    content_type: str | None = None
    declared_size: int | None = None
    error: TransportError | int = TransportError.OK
    data: bytes | None = None
    spool_path: Path | None = None

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        *,
        filename: str | None = None,
        content_type: str | None = None,
        declared_size: int | None = None,
    ) -> UploadedBlob:
        """Wrap an in-memory upload; a declared size that disagrees with the body is a partial transfer."""
        error = TransportError.OK
        if declared_size is not None and declared_size != len(data):
            error = TransportError.PARTIAL
        return cls(
            filename=filename,
            content_type=content_type,
            declared_size=declared_size,
            error=error,
            data=data,
        )

    @classmethod
    def missing(cls) -> UploadedBlob:
        return cls(error=TransportError.NO_FILE)


def transport_error_message(error: TransportError | int) -> str:
    try:
        return _TRANSPORT_MESSAGES[TransportError(error)]
    except (KeyError, ValueError):
        return "Unknown upload error"


def _format_limit(max_size: int) -> str:
    return f"{round(max_size / 1_048_576, 1):g} MB"


def check_size(size: int, max_size: int) -> None:
    """Raise the 413 ``ValidationError`` when ``size`` exceeds ``max_size``."""
    if size > max_size:
        raise ValidationError(f"File size exceeds the maximum of {_format_limit(max_size)}", status=413)


def _read_spooled(spool_path: Path, upload_tmp_dir: Path | None, max_size: int) -> bytes:
    if upload_tmp_dir is None:
        logger.warning("Rejected spooled upload %s: no upload_tmp_dir configured", spool_path)
        raise ValidationError("Invalid file upload")

    spool_path = Path(spool_path)
    root = Path(upload_tmp_dir).expanduser().resolve()
    if spool_path.is_symlink():
        logger.warning("Rejected spooled upload %s: symlink", spool_path)
        raise ValidationError("Invalid file upload")
    resolved = spool_path.expanduser().resolve()
    if not resolved.is_relative_to(root) or not resolved.is_file():
        logger.warning("Rejected spooled upload %s: outside %s or not a regular file", spool_path, root)
        raise ValidationError("Invalid file upload")

    check_size(resolved.stat().st_size, max_size)
    return resolved.read_bytes()


def validate_upload(
    blob: UploadedBlob,
    *,
    max_size: int = DEFAULT_MAX_SIZE,
    upload_tmp_dir: Path | None = None,
) -> bytes:
    """Check transport status, provenance and size, in that order.

    Args:
        blob: The upload as received from the transport.
        max_size: Largest accepted byte length.
        upload_tmp_dir: Only spooled files inside this directory are accepted.

    Returns:
        The validated file content.

    Raises:
        ValidationError: On the first failed check, with a message fit for display.
    """
    if blob.error != TransportError.OK:
        raise ValidationError(transport_error_message(blob.error))

    if (blob.data is None) == (blob.spool_path is None):
        raise ValidationError("Invalid file upload")

    if blob.spool_path is not None:
        data = _read_spooled(blob.spool_path, upload_tmp_dir, max_size)
    else:
        data = blob.data
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ValidationError("Invalid file upload")
        data = bytes(data)

    check_size(len(data), max_size)
    if len(data) == 0:
        raise ValidationError("Uploaded file is empty")
    return data
