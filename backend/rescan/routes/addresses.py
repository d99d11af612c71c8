"""
Rescan Backend — Address Route Handlers
========================================

What:  Address lookup, registration, leaderboard and per-address history.
Who:   Called by the frontend address form and points display.

All address strings go through the ledger's normalization and validation;
a malformed address is a 400, not a 422.
"""

import logging

from fastapi import APIRouter, Depends, Query, Response

from rescan.dependencies import get_ledger
from rescan.schemas.address import (
    AddressCreateRequest,
    AddressCreateResponse,
    AddressListResponse,
    AddressLookupResponse,
    AddressResponse,
    PointsUpdateRequest,
)
from rescan.schemas.common import ErrorResponse
from rescan.schemas.scan import ScanListResponse, ScanRecordResponse
from rescan.services.ledger import LedgerCoordinator
from rescan.services.scan_recorder import MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/address", tags=["Addresses"])


@router.get(
    "/lookup",
    response_model=AddressLookupResponse,
    responses={400: {"description": "Malformed address", "model": ErrorResponse}},
    summary="Check whether an address is registered",
)
async def lookup_address(
    street_address: str = Query(..., description="Street address to look up"),
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> AddressLookupResponse:
    """Never creates anything: an unknown address returns exists=false."""
    key = ledger.validate_address(street_address)
    address = await ledger.lookup_address(key)
    return AddressLookupResponse(
        exists=address is not None,
        street_address=key,
        address=AddressResponse.from_model(address) if address is not None else None,
    )


@router.post(
    "",
    status_code=201,
    response_model=AddressCreateResponse,
    responses={
        200: {"description": "Address was already registered", "model": AddressCreateResponse},
        201: {"description": "Address registered", "model": AddressCreateResponse},
        400: {"description": "Malformed address", "model": ErrorResponse},
    },
    summary="Register a street address",
)
async def create_address(
    body: AddressCreateRequest,
    response: Response,
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> AddressCreateResponse:
    """
    Idempotent registration. A second POST for the same address (in any
    casing or surrounding whitespace) returns the existing row with 200.
    """
    address, created = await ledger.create_address(body.street_address)
    if not created:
        response.status_code = 200
    return AddressCreateResponse(
        created=created,
        message="Address registered" if created else "Address already registered",
        address=AddressResponse.from_model(address),
    )


@router.patch(
    "/points",
    response_model=AddressResponse,
    responses={
        400: {"description": "Negative points or malformed address", "model": ErrorResponse},
        404: {"description": "Address not registered", "model": ErrorResponse},
    },
    summary="Credit points to a registered address",
)
async def add_points(
    body: PointsUpdateRequest,
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> AddressResponse:
    address = await ledger.add_points(body.street_address, body.points_to_add)
    return AddressResponse.from_model(address)


@router.get(
    "",
    response_model=AddressListResponse,
    summary="List addresses by points (leaderboard)",
)
async def list_addresses(
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> AddressListResponse:
    addresses = await ledger.list_addresses(limit)
    return AddressListResponse(
        addresses=[AddressResponse.from_model(a) for a in addresses],
        count=len(addresses),
    )


@router.get(
    "/scans",
    response_model=ScanListResponse,
    responses={400: {"description": "Malformed address", "model": ErrorResponse}},
    summary="Scan history for one address, newest first",
)
async def list_address_scans(
    response: Response,
    street_address: str = Query(...),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    ledger: LedgerCoordinator = Depends(get_ledger),
) -> ScanListResponse:
    scans = await ledger.list_scans(street_address, limit=limit, offset=offset)
    response.headers["Cache-Control"] = "no-cache"
    return ScanListResponse(
        street_address=ledger.validate_address(street_address),
        scans=[ScanRecordResponse.from_record(s) for s in scans],
        count=len(scans),
        limit=limit,
        offset=offset,
    )
