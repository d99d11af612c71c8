"""
Rescan Backend — Address Request/Response Schemas
==================================================

What:  API contract for the address lookup, registration and points endpoints.

Address strings are deliberately accepted as plain `str` here. Emptiness,
length, character and region rules are business rules enforced by
AddressStore (HTTP 400), not schema rules (HTTP 422).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from rescan.models.address import Address


class AddressResponse(BaseModel):
    street_address: str = Field(description="Normalized address key")
    points_total: int = Field(description="Cumulative points credited to this address")
    created_at: datetime = Field(description="When the address was registered (UTC)")
    updated_at: datetime = Field(description="When points were last credited (UTC)")

    @classmethod
    def from_model(cls, address: Address) -> "AddressResponse":
        return cls(
            street_address=address.key,
            points_total=address.points_total,
            created_at=address.created_at,
            updated_at=address.updated_at,
        )


class AddressLookupResponse(BaseModel):
    """Returned by GET /api/address/lookup. `address` is null when exists=false."""
    exists: bool
    street_address: str = Field(description="The normalized form of the queried address")
    address: Optional[AddressResponse] = None


class AddressCreateRequest(BaseModel):
    street_address: str = Field(description="Street address to register", examples=["123 Oak Street"])


class AddressCreateResponse(BaseModel):
    """
    Returned by POST /api/address.

    created=true with HTTP 201 for a new address; created=false with HTTP 200
    when the address was already registered.
    """
    created: bool
    message: str
    address: AddressResponse


class PointsUpdateRequest(BaseModel):
    street_address: str = Field(description="Registered street address")
    points_to_add: int = Field(description="Non-negative number of points to credit")


class AddressListResponse(BaseModel):
    addresses: List[AddressResponse]
    count: int
