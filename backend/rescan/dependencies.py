"""
FastAPI dependency providers.

The app factory puts one instance of each collaborator on `app.state`;
route handlers receive them through `Depends(...)` so tests can build an
app with their own Settings, Database or VisionService.
"""

from fastapi import Request

from rescan.config import Settings
from rescan.services.file_service import FileService
from rescan.services.ledger import LedgerCoordinator
from rescan.services.scan_service import ScanService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> LedgerCoordinator:
    return request.app.state.ledger


def get_scan_service(request: Request) -> ScanService:
    return request.app.state.scan_service


def get_file_service(request: Request) -> FileService:
    return request.app.state.files
