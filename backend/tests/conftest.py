"""
Rescan Backend — Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the test suite.
How:   Ledger tests run against a real SQLite file under tmp_path (the
       ledger's guarantees live in SQL, so mocking the session would test
       nothing). External collaborators (Gemini, libmagic) are mocked.

Fixture Hierarchy (all function-scoped):
    app_settings ──┬── database ── ledger
                   └── test_client (own app + schema)
    sample_image_bytes
"""

import os
import tempfile

# Override settings BEFORE any rescan imports: rescan.main builds a
# module-level app from the environment at import time.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="rescan_test_db_"), "rescan.db"
)
os.environ["VISION_PROVIDER"] = "mock"
os.environ["GEMINI_API_KEY"] = ""
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="rescan_test_storage_")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from rescan.config import Settings
from rescan.database import Database
from rescan.schemas.scan import MaterialResult
from rescan.services.ledger import LedgerCoordinator
from rescan.services.mock_vision import MockVisionService


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    """Settings pointing at a fresh SQLite file and storage dir per test."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        storage_root=str(tmp_path / "storage"),
        vision_provider="mock",
        gemini_api_key="",
        log_level="WARNING",
        rate_limit_requests=10000,
        retry_min_wait=0,
        retry_max_wait=0,
    )


@pytest_asyncio.fixture
async def database(app_settings):
    db = Database.from_settings(app_settings)
    await db.create_schema()
    yield db
    await db.dispose()


@pytest.fixture
def ledger(database, app_settings) -> LedgerCoordinator:
    return LedgerCoordinator(database, app_settings)


@pytest.fixture
def recyclable_pet() -> MaterialResult:
    return MaterialResult(
        material_type="plastic",
        ric_code=1,
        is_recyclable=True,
        confidence=0.85,
        description="PET bottle",
    )


@pytest.fixture
def non_recyclable_ps() -> MaterialResult:
    return MaterialResult(
        material_type="plastic",
        ric_code=6,
        is_recyclable=False,
        confidence=0.81,
        description="Foam container",
    )


@pytest.fixture
def sample_image_bytes():
    """
    Minimal JPEG: SOI marker + JFIF header + EOI marker.

    Not a real photograph; tests patch MIME detection so libmagic is not
    required, and the mock vision service never decodes it.
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest_asyncio.fixture
async def test_app(app_settings):
    """
    A fresh app with its schema created.

    ASGITransport does not run the lifespan, so the schema and storage
    directory are prepared here instead.
    """
    from rescan.main import create_app

    app = create_app(app_settings, vision_service=MockVisionService())
    await app.state.database.create_schema()
    app.state.files.ensure_storage_root()
    yield app
    await app.state.database.dispose()


@pytest_asyncio.fixture
async def test_client(test_app):
    """
    HTTPX AsyncClient talking to test_app without a server.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
