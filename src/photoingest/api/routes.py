"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from photoingest.api.middleware import require_uploader_id, verify_api_key
from photoingest.api.schemas import (
    DeleteRequest,
    DeleteResponse,
    ErrorResponse,
    FileOutcomeModel,
    HealthResponse,
    PromoteRequest,
    PromoteResponse,
    UploadResponse,
)
from photoingest.imaging.validation import UploadedBlob, check_size
from photoingest.storage.deleter import delete_asset

if TYPE_CHECKING:
    from photoingest.pipeline import UploadProcessor
    from photoingest.storage.outcomes import FileOutcome
    from photoingest.storage.promoter import ProductionPromoter
    from photoingest.workers import ProcessingPool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_processor(request: Request) -> UploadProcessor:
    processor: UploadProcessor = request.app.state.processor
    return processor


def _get_promoter(request: Request) -> ProductionPromoter:
    promoter: ProductionPromoter = request.app.state.promoter
    return promoter


def _get_pool(request: Request) -> ProcessingPool:
    pool: ProcessingPool = request.app.state.processing_pool
    return pool


def _outcome_models(outcomes: tuple[FileOutcome, ...]) -> list[FileOutcomeModel]:
    return [
        FileOutcomeModel(
            variant=outcome.variant.name.lower(),
            file_name=outcome.filename,
            status=outcome.status.value,
            error=outcome.error,
        )
        for outcome in outcomes
    ]


async def _to_blob(photo: UploadFile | None, max_size: int) -> UploadedBlob:
    """Read an uploaded form part, refusing oversized parts before buffering them.

    Starlette's ``size`` counts bytes received, not a client declaration, so
    it is used for the limit check only and never as ``declared_size``.
    """
    if photo is None:
        return UploadedBlob.missing()
    try:
        if photo.size is not None:
            check_size(photo.size, max_size)
        data = await photo.read(max_size + 1)
    finally:
        await photo.close()
    check_size(len(data), max_size)
    return UploadedBlob.from_bytes(
        data,
        filename=photo.filename,
        content_type=photo.content_type,
    )


@router.post(
    "/photos",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Upload a photo into staging",
)
async def upload_photo(
    request: Request,
    uploader_id: Annotated[str, Depends(require_uploader_id)],
    photo: Annotated[UploadFile | None, File()] = None,
) -> UploadResponse:
    """Validate an uploaded image and stage its main, thumbnail and card files."""
    blob = await _to_blob(photo, request.app.state.settings.max_file_size)
    processor = _get_processor(request)
    result = await _get_pool(request).run(processor.process, blob, uploader_id)
    return UploadResponse(**result.to_dict())


@router.post(
    "/photos/promote",
    response_model=PromoteResponse,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
    summary="Move a staged photo into production storage",
)
async def promote_photo(request: Request, body: PromoteRequest) -> PromoteResponse:
    """Promote a staged photo and its derivatives under the subject's canonical path."""
    promoter = _get_promoter(request)
    result = await _get_pool(request).run(promoter.promote, body.staged_path, body.subject_id)
    return PromoteResponse(
        production_path=result.production_path,
        complete=result.complete,
        files=_outcome_models(result.files),
    )


@router.post(
    "/photos/delete",
    response_model=DeleteResponse,
    summary="Delete a staged or promoted photo",
)
async def delete_photo(request: Request, body: DeleteRequest) -> DeleteResponse:
    """Delete a photo and its derivatives; deleting a missing photo succeeds."""
    layout = _get_processor(request).layout
    result = await _get_pool(request).run(delete_asset, body.path, layout)
    return DeleteResponse(
        complete=result.complete,
        directory_removed=result.directory_removed,
        files=_outcome_models(result.files),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    pool = _get_pool(request)
    return HealthResponse(
        status="ok",
        active_jobs=pool.active_count,
        queue_depth=pool.queue_depth,
        capacity=pool.capacity,
    )
