"""
Rescan Backend — Address Store
===============================

What:  Lookup, creation and atomic point accrual for street addresses.
How:   Works inside a session supplied by the caller; the caller
       (LedgerCoordinator) owns the transaction boundary.

Address normalization:
    key = raw.strip().casefold()
    "  123 Oak Street " and "123 OAK STREET" resolve to the same row.

Concurrency rules:
    - create() inserts inside a SAVEPOINT. A unique-key collision rolls back
      only the savepoint and surfaces as DuplicateKeyError, leaving the
      enclosing transaction usable.
    - find_or_create() = lookup, then create, then lookup again on
      DuplicateKeyError. A concurrent creator can never produce a second row.
    - add_points() is one UPDATE ... SET points_total = points_total + :delta.
      No read-modify-write, so concurrent increments cannot lose updates.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rescan.exceptions import DuplicateKeyError, NotFoundError, ValidationError
from rescan.models.address import Address

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 255
FORBIDDEN_CHARACTERS = re.compile(r"[<>\"']")


def normalize_address(raw: str) -> str:
    """Trim and case-fold an address into its storage key."""
    if not isinstance(raw, str):
        raise ValidationError(
            message="Street address must be a string",
            field="street_address",
        )
    return raw.strip().casefold()


def validate_address(
    raw: str,
    max_length: int = DEFAULT_MAX_LENGTH,
    required_terms: Sequence[str] = (),
) -> str:
    """
    Normalize an address and check it against the address rules.

    Returns:
        The normalized key.

    Raises:
        ValidationError: empty, too long, no letter or digit, contains one of
            < > " ', or (when required_terms is non-empty) mentions none of
            the required region terms as a whole word.
    """
    key = normalize_address(raw)

    if not key:
        raise ValidationError(
            message="Street address is required",
            field="street_address",
        )
    if len(key) > max_length:
        raise ValidationError(
            message=f"Street address must be {max_length} characters or fewer",
            field="street_address",
            context={"max_length": max_length, "length": len(key)},
        )
    if not any(ch.isalnum() for ch in key):
        raise ValidationError(
            message="Street address must contain at least one letter or digit",
            field="street_address",
        )
    if FORBIDDEN_CHARACTERS.search(key):
        raise ValidationError(
            message="Street address contains invalid characters",
            field="street_address",
            context={"forbidden": "<>\"'"},
        )
    if required_terms and not any(
        re.search(rf"\b{re.escape(term)}\b", key) for term in required_terms
    ):
        raise ValidationError(
            message="Street address must be within the supported region",
            field="street_address",
            context={"required_terms": list(required_terms)},
        )
    return key


class AddressStore:
    """
    Address persistence bound to one session.

    Every public method accepts a raw address and normalizes it, so callers
    never need to pre-normalize.
    """

    def __init__(
        self,
        session: AsyncSession,
        max_length: int = DEFAULT_MAX_LENGTH,
        required_terms: Sequence[str] = (),
    ):
        self.session = session
        self.max_length = max_length
        self.required_terms = tuple(required_terms)

    def validate_address(self, raw: str) -> str:
        return validate_address(raw, self.max_length, self.required_terms)

    async def _fetch(self, key: str) -> Optional[Address]:
        # populate_existing: the atomic UPDATE bypasses the identity map, so
        # a cached instance would otherwise show the pre-increment total.
        result = await self.session.execute(
            select(Address)
            .where(Address.key == key)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lookup(self, address: str) -> Optional[Address]:
        """Returns the Address for `address`, or None. Never writes."""
        key = self.validate_address(address)
        return await self._fetch(key)

    async def get(self, address: str) -> Address:
        """Like lookup(), but raises NotFoundError instead of returning None."""
        key = self.validate_address(address)
        found = await self._fetch(key)
        if found is None:
            raise NotFoundError(resource="address", resource_id=key)
        return found

    async def create(self, address: str) -> Address:
        """
        Insert a new address with points_total = 0.

        Raises:
            ValidationError: the address breaks an address rule.
            DuplicateKeyError: the address already exists.
        """
        key = self.validate_address(address)
        now = datetime.now(timezone.utc)
        try:
            async with self.session.begin_nested():
                await self.session.execute(
                    insert(Address).values(
                        key=key,
                        points_total=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as e:
            logger.debug("Address %r already exists", key)
            raise DuplicateKeyError(key) from e

        logger.info("Address registered: %r", key)
        return await self._fetch(key)

    async def add_points(self, address: str, delta: int) -> Address:
        """
        Atomically add `delta` points to an existing address.

        Raises:
            ValidationError: delta is not an int or is negative.
            NotFoundError: the address does not exist (no row is created).
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError(
                message="Points must be a whole number",
                field="points_to_add",
                context={"type": type(delta).__name__},
            )
        if delta < 0:
            raise ValidationError(
                message="Points to add must not be negative",
                field="points_to_add",
                context={"points_to_add": delta},
            )

        key = self.validate_address(address)
        result = await self.session.execute(
            update(Address)
            .where(Address.key == key)
            .values(
                points_total=Address.points_total + delta,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(resource="address", resource_id=key)

        return await self._fetch(key)

    async def find_or_create(self, address: str) -> Tuple[Address, bool]:
        """
        Return the existing address or create it.

        Returns:
            (address, was_created)
        """
        existing = await self.lookup(address)
        if existing is not None:
            return existing, False

        try:
            return await self.create(address), True
        except DuplicateKeyError:
            # Another writer created it between our lookup and insert
            winner = await self.lookup(address)
            if winner is None:
                raise
            return winner, False

    async def list_addresses(self, limit: int = 50) -> List[Address]:
        """Addresses ordered by points_total (highest first), then key."""
        if limit < 1:
            raise ValidationError(message="Limit must be at least 1", field="limit")
        result = await self.session.execute(
            select(Address)
            .order_by(Address.points_total.desc(), Address.key)
            .limit(limit)
        )
        return list(result.scalars().all())
