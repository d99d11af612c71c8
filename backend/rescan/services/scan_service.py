"""
Rescan Backend — Scan Service (Upload Orchestrator)
====================================================

What:  Coordinates photo upload → material identification → ledger credit.
Who:   Called by POST /api/scan/upload and POST /api/scans.

Orchestration Flow (POST /api/scan/upload):
    ┌──────────┐   ┌────────────┐   ┌────────────┐   ┌──────────────┐   ┌──────────┐
    │ validate │──▶│ validate & │──▶│  vision    │──▶│ ledger       │──▶│ feedback │
    │ address  │   │ store file │   │  analysis  │   │ record_scan  │   │ response │
    └──────────┘   └────────────┘   └────────────┘   └──────────────┘   └──────────┘

    The vision call completes before the ledger transaction begins; a
    vision failure never leaves a partial ledger write. On any failure
    after the file was stored, the file is removed and the error propagates.
"""

import logging
from typing import Optional

from rescan.exceptions import UnrecognizedMaterialError
from rescan.schemas.address import AddressResponse
from rescan.schemas.scan import MaterialResult, ScanRecordResponse, ScanUploadResponse
from rescan.services.file_service import FileService
from rescan.services.ledger import LedgerCoordinator
from rescan.services.materials import educational_content
from rescan.services.vision_base import VisionService

logger = logging.getLogger(__name__)


class ScanService:
    def __init__(
        self,
        ledger: LedgerCoordinator,
        vision: VisionService,
        files: FileService,
        min_confidence: float = 0.2,
    ):
        self.ledger = ledger
        self.vision = vision
        self.files = files
        self.min_confidence = min_confidence

    def ensure_recognized(self, material: MaterialResult) -> None:
        """Rejects identifications too uncertain to award points for."""
        if material.confidence is not None and material.confidence < self.min_confidence:
            raise UnrecognizedMaterialError(
                confidence=material.confidence,
                context={"min_confidence": self.min_confidence},
            )

    async def process_upload(
        self,
        street_address: str,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> ScanUploadResponse:
        """
        Full upload workflow.

        Error Recovery:
            address invalid      → ValidationError (400), nothing stored
            file invalid         → ValidationError (400), nothing stored
            vision fails         → 503 / 422, file removed, ledger untouched
            ledger fails         → 500, file removed, transaction rolled back
        """
        key = self.ledger.validate_address(street_address)

        absolute_path, relative_path = await self.files.validate_and_store(
            filename=filename,
            content=content,
            content_length=content_length,
        )

        try:
            material = await self.vision.analyze_image(absolute_path, filename)
            self.ensure_recognized(material)
            record, address = await self.ledger.record_scan(
                key,
                material,
                scan_method="upload",
                original_filename=filename[:255],
                image_path=relative_path,
            )
        except Exception:
            await self.files.cleanup_file(absolute_path)
            raise

        return self._build_response(material, record, address)

    async def record_manual(
        self,
        street_address: str,
        material: MaterialResult,
        scan_method: str = "manual",
    ) -> ScanUploadResponse:
        """Credit an identification made without an uploaded photo."""
        self.ensure_recognized(material)
        record, address = await self.ledger.record_scan(street_address, material, scan_method=scan_method)
        return self._build_response(material, record, address)

    def _build_response(self, material, record, address) -> ScanUploadResponse:
        # Built from the committed transaction's own values; no second read
        return ScanUploadResponse(
            message=f"Scan recorded: {record.points_awarded} points awarded",
            scan=ScanRecordResponse.from_record(record),
            address=AddressResponse.from_model(address),
            educational_content=educational_content(material, record.points_awarded),
        )
