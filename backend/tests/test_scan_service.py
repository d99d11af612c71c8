"""
Rescan Backend — Scan Service Tests
====================================

What:  The upload workflow (validate → store → identify → credit) with a
       real ledger, a temporary storage root and a mocked vision provider.

What we test:
    ✅ Successful upload credits the address and keeps the photo
    ✅ Vision failures leave the ledger untouched and remove the photo
    ✅ Low-confidence identifications are rejected before any ledger write
    ✅ Malformed addresses are rejected before anything is stored
    ✅ Manual identifications credit the ledger without a photo
    ✅ Responses carry the committed total without a second ledger read
"""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from rescan.exceptions import (
    StorageUnavailableError,
    UnrecognizedMaterialError,
    ValidationError,
    VisionServiceError,
)
from rescan.schemas.scan import MaterialResult
from rescan.services.file_service import FileService
from rescan.services.scan_service import ScanService


@pytest.fixture
def files(tmp_path) -> FileService:
    service = FileService(str(tmp_path / "uploads"), 1024 * 1024)
    service.ensure_storage_root()
    return service


@pytest.fixture
def vision():
    mock = AsyncMock()
    mock.name = "test"
    return mock


@pytest.fixture
def scan_service(ledger, vision, files) -> ScanService:
    return ScanService(ledger, vision, files, min_confidence=0.2)


@pytest.fixture(autouse=True)
def jpeg_mime():
    with patch.object(FileService, "detect_mime_type", return_value="image/jpeg"):
        yield


def stored_files(files: FileService):
    return [p for p in Path(files.storage_root).rglob("*") if p.is_file()]


class TestProcessUpload:

    @pytest.mark.asyncio
    async def test_success(self, scan_service, vision, files, ledger, recyclable_pet, sample_image_bytes):
        vision.analyze_image.return_value = recyclable_pet

        response = await scan_service.process_upload(
            street_address="123 Oak Street",
            filename="bottle.jpg",
            content=sample_image_bytes,
        )

        assert response.message == "Scan recorded: 100 points awarded"
        assert response.scan.points_awarded == 100
        assert response.scan.scan_method == "upload"
        assert response.scan.original_filename == "bottle.jpg"
        assert response.scan.image_url.startswith("/api/files/")
        assert response.address.street_address == "123 oak street"
        assert response.address.points_total == 100
        assert "Great job" in response.educational_content.points_explanation
        assert len(stored_files(files)) == 1

        analyzed_path, analyzed_name = vision.analyze_image.await_args.args
        assert Path(analyzed_path).is_file()
        assert analyzed_name == "bottle.jpg"

    @pytest.mark.asyncio
    async def test_vision_failure_leaves_no_trace(self, scan_service, vision, files, ledger, sample_image_bytes):
        vision.analyze_image.side_effect = VisionServiceError(retry_after=60)

        with pytest.raises(VisionServiceError):
            await scan_service.process_upload("123 Oak Street", "bottle.jpg", sample_image_bytes)

        assert stored_files(files) == []
        assert await ledger.lookup_address("123 Oak Street") is None

    @pytest.mark.asyncio
    async def test_low_confidence_rejected(self, scan_service, vision, files, ledger, sample_image_bytes):
        vision.analyze_image.return_value = MaterialResult(
            material_type="plastic", is_recyclable=False, confidence=0.1
        )

        with pytest.raises(UnrecognizedMaterialError) as exc_info:
            await scan_service.process_upload("123 Oak Street", "blurry.jpg", sample_image_bytes)

        assert exc_info.value.confidence == 0.1
        assert stored_files(files) == []
        assert (await ledger.scan_statistics()).total_scans == 0

    @pytest.mark.asyncio
    async def test_invalid_address_stores_nothing(self, scan_service, vision, files, sample_image_bytes):
        with pytest.raises(ValidationError):
            await scan_service.process_upload("   ", "bottle.jpg", sample_image_bytes)

        vision.analyze_image.assert_not_awaited()
        assert stored_files(files) == []

    @pytest.mark.asyncio
    async def test_ledger_failure_removes_photo(self, scan_service, vision, files, ledger, recyclable_pet, sample_image_bytes):
        vision.analyze_image.return_value = recyclable_pet

        with patch.object(ledger, "record_scan", AsyncMock(side_effect=StorageUnavailableError())):
            with pytest.raises(StorageUnavailableError):
                await scan_service.process_upload("123 Oak Street", "bottle.jpg", sample_image_bytes)

        assert stored_files(files) == []

    @pytest.mark.asyncio
    async def test_non_recyclable_upload(self, scan_service, vision, non_recyclable_ps, sample_image_bytes):
        vision.analyze_image.return_value = non_recyclable_ps

        response = await scan_service.process_upload("123 Oak Street", "foam.png", sample_image_bytes)

        assert response.scan.points_awarded == 10
        assert response.scan.is_recyclable is False
        assert "Good learning" in response.educational_content.points_explanation

    @pytest.mark.asyncio
    async def test_response_does_not_reread_ledger(self, scan_service, vision, ledger, recyclable_pet, sample_image_bytes):
        vision.analyze_image.return_value = recyclable_pet

        with patch.object(ledger, "lookup_address", AsyncMock(side_effect=StorageUnavailableError())):
            response = await scan_service.process_upload("123 Oak Street", "bottle.jpg", sample_image_bytes)

        assert response.address.points_total == 100
        assert (await ledger.lookup_address("123 Oak Street")).points_total == 100

    @pytest.mark.asyncio
    async def test_response_total_is_this_scans_total(self, scan_service, vision, ledger, recyclable_pet, sample_image_bytes):
        vision.analyze_image.return_value = recyclable_pet

        first = await scan_service.process_upload("123 Oak Street", "a.jpg", sample_image_bytes)
        second = await scan_service.process_upload("123 Oak Street", "b.jpg", sample_image_bytes)

        assert first.address.points_total == 100
        assert second.address.points_total == 200


class TestRecordManual:

    @pytest.mark.asyncio
    async def test_manual_scan(self, scan_service, vision, ledger, recyclable_pet):
        response = await scan_service.record_manual("9 Pine Rd", recyclable_pet)

        assert response.scan.scan_method == "manual"
        assert response.scan.image_url is None
        assert response.address.points_total == 100
        vision.analyze_image.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_manual_scan_without_confidence(self, scan_service, ledger):
        material = MaterialResult(material_type="glass", is_recyclable=True)
        response = await scan_service.record_manual("9 Pine Rd", material, scan_method="camera")
        assert response.scan.scan_method == "camera"
        assert response.scan.points_awarded == 100
