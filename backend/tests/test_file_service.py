"""
Rescan Backend — File Service Unit Tests
=========================================

What:  Upload validation (extension, size, MIME type), storage layout,
       cleanup and path confinement.
How:   Temporary storage roots; MIME detection is patched so the tests do
       not depend on the system libmagic.

Test Strategy:
    ✅ Allowed extensions (.jpg, .jpeg, .png, .webp), case-insensitive
    ✅ Rejected extensions (.gif, .pdf, .exe, none)
    ✅ Size limits (header and actual bytes, empty files)
    ✅ Stored under YYYY/MM/DD/<uuid><ext>
    ✅ resolve() refuses paths outside the storage root
"""

import re
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from rescan.exceptions import FileStorageError, ValidationError
from rescan.services.file_service import FileService

MAX_SIZE = 1024 * 1024


@pytest.fixture
def file_service(tmp_path) -> FileService:
    service = FileService(str(tmp_path / "storage"), MAX_SIZE)
    service.ensure_storage_root()
    return service


class TestFileValidation:

    @pytest.mark.parametrize("filename", ["photo.jpg", "photo.jpeg", "photo.png", "photo.webp"])
    def test_allowed_extensions(self, file_service, filename):
        assert file_service.validate_extension(filename) == Path(filename).suffix

    def test_extension_case_insensitive(self, file_service):
        assert file_service.validate_extension("photo.JPG") == ".jpg"
        assert file_service.validate_extension("photo.Png") == ".png"

    @pytest.mark.parametrize("filename", ["animation.gif", "document.pdf", "malware.exe", "noextension"])
    def test_rejected_extensions(self, file_service, filename):
        with pytest.raises(ValidationError, match="not supported"):
            file_service.validate_extension(filename)

    def test_size_within_limit(self, file_service):
        file_service.validate_size(1000, 1000)

    def test_size_at_limit(self, file_service):
        file_service.validate_size(None, MAX_SIZE)

    def test_size_header_over_limit(self, file_service):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            file_service.validate_size(MAX_SIZE + 1, 10)

    def test_size_actual_over_limit(self, file_service):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            file_service.validate_size(None, MAX_SIZE + 1)

    def test_empty_file_rejected(self, file_service):
        with pytest.raises(ValidationError, match="empty"):
            file_service.validate_size(0, 0)

    def test_mime_type_mismatch_rejected(self, file_service):
        with patch.object(FileService, "detect_mime_type", return_value="application/pdf"):
            with pytest.raises(ValidationError, match="not supported"):
                file_service.validate_mime_type(b"%PDF-1.4")

    def test_mime_detection_failure_is_storage_error(self, file_service):
        broken_magic = MagicMock()
        broken_magic.from_buffer.side_effect = RuntimeError("libmagic missing")
        with patch.dict("sys.modules", {"magic": broken_magic}):
            with pytest.raises(FileStorageError):
                file_service.detect_mime_type(b"\xff\xd8")


class TestFileStorage:

    @pytest.mark.asyncio
    async def test_validate_and_store(self, file_service, sample_image_bytes):
        with patch.object(FileService, "detect_mime_type", return_value="image/jpeg"):
            absolute, relative = await file_service.validate_and_store(
                filename="My Bottle.JPG",
                content=sample_image_bytes,
                content_length=len(sample_image_bytes),
            )

        assert re.fullmatch(r"\d{4}/\d{2}/\d{2}/[0-9a-f-]{36}\.jpg", relative)
        assert Path(absolute).read_bytes() == sample_image_bytes
        assert "My Bottle" not in absolute

    @pytest.mark.asyncio
    async def test_invalid_upload_is_not_stored(self, file_service, sample_image_bytes):
        with pytest.raises(ValidationError):
            await file_service.validate_and_store("notes.txt", sample_image_bytes)
        assert list(file_service.storage_root.rglob("*.*")) == []

    @pytest.mark.asyncio
    async def test_cleanup_file(self, file_service):
        absolute, _ = await file_service.store_file(b"data", ".png")
        await file_service.cleanup_file(absolute)
        assert not Path(absolute).exists()
        # A second cleanup is a no-op
        await file_service.cleanup_file(absolute)

    @pytest.mark.asyncio
    async def test_resolve_round_trip(self, file_service):
        absolute, relative = await file_service.store_file(b"data", ".webp")
        assert file_service.resolve(relative) == Path(absolute).resolve()

    @pytest.mark.parametrize("path", ["../secrets.txt", "2024/../../etc/passwd", "/etc/passwd"])
    def test_resolve_rejects_escape(self, file_service, path):
        with pytest.raises(ValidationError, match="Invalid file path"):
            file_service.resolve(path)
