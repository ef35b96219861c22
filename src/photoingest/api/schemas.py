"""Pydantic request/response schemas for the photoingest API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """A staged upload: main file plus thumbnail and card derivatives."""

    file_name: str
    file_path: str = Field(description="Web-relative path of the main image")
    file_size_bytes: int
    mime_type: str
    width: int
    height: int
    thumb_path: str
    card_path: str


class FileOutcomeModel(BaseModel):
    """Result of one file operation within a promotion or deletion."""

    variant: str = Field(description="'main', 'thumb' or 'card'")
    file_name: str
    status: str = Field(description="'moved', 'removed', 'missing' or 'failed'")
    error: str | None = None


class PromoteRequest(BaseModel):
    staged_path: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)


class PromoteResponse(BaseModel):
    production_path: str
    complete: bool
    files: list[FileOutcomeModel]


class DeleteRequest(BaseModel):
    path: str = Field(min_length=1)


class DeleteResponse(BaseModel):
    complete: bool
    directory_removed: bool
    files: list[FileOutcomeModel]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    active_jobs: int
    queue_depth: int
    capacity: int = Field(description="Jobs that may run at once")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None
