"""Error taxonomy shared by the pipeline, storage layer and HTTP routes."""

from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "Image processing failed"


class PhotoIngestError(Exception):
    """Base exception carrying a machine code, a message and an HTTP status.

    ``public`` errors are client-caused and their message is shown verbatim.
    Non-public errors may mention filesystem layout, so the HTTP layer logs
    the message and returns ``GENERIC_FAILURE_MESSAGE`` instead.
    """

    code = "ERROR"
    status = 500
    public = False

    def __init__(self, message: str, *, status: int | None = None) -> None:
        self.message = message
        if status is not None:
            self.status = status
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return self.message if self.public else GENERIC_FAILURE_MESSAGE


class ValidationError(PhotoIngestError):
    """Upload rejected before decoding: transport failure, bad size, bad provenance."""

    code = "VALIDATION_ERROR"
    status = 400
    public = True


class UnsupportedFormatError(PhotoIngestError):
    """Sniffed content type is outside the allow-list."""

    code = "UNSUPPORTED_FORMAT"
    status = 415
    public = True


class DecodeError(PhotoIngestError):
    """Bytes claim an allowed format but the decoder rejects them."""

    code = "DECODE_ERROR"
    status = 422


class EncodeError(PhotoIngestError):
    code = "ENCODE_ERROR"
    status = 500


class StorageError(PhotoIngestError):
    """Directory creation, write, rename or copy failure."""

    code = "STORAGE_ERROR"
    status = 500


class NotFoundError(PhotoIngestError):
    """Promotion subject or staged file does not exist."""

    code = "NOT_FOUND"
    status = 404
    public = True


class BusyError(PhotoIngestError):
    """No worker became free in time."""

    code = "BUSY"
    status = 503
    public = True
