"""
Rescan Backend — Scan Route Handlers
=====================================

What:  Photo upload, manual identification, scan lookup, feedback,
       ledger statistics and stored-image serving.
Who:   Called by the frontend camera/upload component and results page.

Request Flow (POST /api/scan/upload):
    1. Client sends multipart/form-data with 'image' and 'street_address'
    2. Image bytes are read into memory (bounded by size validation)
    3. ScanService: validate → store → identify → credit ledger
    4. 201 Created with the scan, the updated address and educational content

Caching:
    - Mutations are never cached
    - GET /api/scans/{id}: private, short max-age (feedback can still change)
    - GET /api/files/...: images are immutable once stored
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from fastapi.responses import FileResponse

from rescan.dependencies import get_file_service, get_ledger, get_scan_service
from rescan.exceptions import NotFoundError
from rescan.schemas.common import ErrorResponse
from rescan.schemas.scan import (
    FeedbackRequest,
    ManualScanRequest,
    ScanRecordResponse,
    ScanStatistics,
    ScanUploadResponse,
)
from rescan.services.file_service import FileService
from rescan.services.ledger import LedgerCoordinator
from rescan.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Scans"])


@router.post(
    "/scan/upload",
    status_code=201,
    response_model=ScanUploadResponse,
    responses={
        400: {"description": "Invalid address, file type or size", "model": ErrorResponse},
        422: {"description": "Recycling symbol not recognized", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
        503: {"description": "Recognition service unavailable", "model": ErrorResponse},
    },
    summary="Upload a photo of a recycling symbol",
    description=(
        "Upload a photo (PNG, JPG, JPEG or WebP) of an item's recycling symbol "
        "together with a street address. The material is identified and the "
        "address is credited with points in one atomic ledger transaction."
    ),
)
async def upload_scan(
    image: UploadFile = File(..., description="Photo of the recycling symbol"),
    street_address: str = Form(..., description="Address to credit"),
    scan_service: ScanService = Depends(get_scan_service),
) -> ScanUploadResponse:
    """
    Error responses (handled by global exception handlers):
        400: ValidationError (address or file)
        422: UnrecognizedMaterialError
        503: VisionServiceError / CircuitBreakerOpenError
        500: StorageUnavailableError (nothing was credited)
    """
    try:
        content = await image.read()
        logger.info(
            "Received scan upload: filename=%s, size=%d bytes",
            image.filename or "unknown",
            len(content),
        )
        return await scan_service.process_upload(
            street_address=street_address,
            filename=image.filename or "upload.jpg",
            content=content,
            content_length=image.size,
        )
    finally:
        await image.close()


@router.post(
    "/scans",
    status_code=201,
    response_model=ScanUploadResponse,
    responses={
        400: {"description": "Invalid address", "model": ErrorResponse},
        422: {"description": "Identification too uncertain", "model": ErrorResponse},
    },
    summary="Record an identification made without a photo",
)
async def create_scan(
    body: ManualScanRequest,
    scan_service: ScanService = Depends(get_scan_service),
) -> ScanUploadResponse:
    return await scan_service.record_manual(
        body.street_address,
        body.material,
        scan_method=body.scan_method,
    )


# Declared before /scans/{scan_id} so "statistics" is not parsed as an ID
@router.get(
    "/scans/statistics",
    response_model=ScanStatistics,
    summary="Aggregate scan statistics",
)
async def scan_statistics(
    street_address: str | None = Query(
        default=None,
        description="Limit the statistics to one address; omit for the whole ledger",
    ),
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> ScanStatistics:
    return await ledger.scan_statistics(street_address)


@router.get(
    "/scans/{scan_id}",
    response_model=ScanRecordResponse,
    responses={404: {"description": "Scan not found", "model": ErrorResponse}},
    summary="Get a single scan record",
)
async def get_scan(
    scan_id: UUID,
    response: Response,
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> ScanRecordResponse:
    scan = await ledger.get_scan(scan_id)
    response.headers["Cache-Control"] = "private, max-age=60"
    return ScanRecordResponse.from_record(scan)


@router.patch(
    "/scans/{scan_id}/feedback",
    response_model=ScanRecordResponse,
    responses={
        400: {"description": "Unknown feedback value", "model": ErrorResponse},
        404: {"description": "Scan not found", "model": ErrorResponse},
    },
    summary="Tell us whether the identification was right",
)
async def submit_feedback(
    scan_id: UUID,
    body: FeedbackRequest,
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> ScanRecordResponse:
    """Feedback never changes points already credited."""
    scan = await ledger.attach_feedback(scan_id, body.feedback)
    return ScanRecordResponse.from_record(scan)


@router.get(
    "/files/{file_path:path}",
    summary="Serve stored scan photos",
    responses={
        200: {"description": "Image file"},
        400: {"description": "Path outside the storage root", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_file(
    file_path: str,
    files: FileService = Depends(get_file_service),
) -> FileResponse:
    full_path = files.resolve(file_path)
    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400, immutable"},
    )
