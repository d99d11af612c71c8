"""
Rescan Backend — Ledger Coordinator
====================================

What:  The only path that mutates the points ledger.
How:   Each operation opens one transaction on the injected Database, binds
       an AddressStore and a ScanRecorder to it, and commits or rolls back
       as a unit. The whole transaction is bounded by
       `ledger_timeout_seconds`.

record_scan() flow:
    ┌──────────────┐   ┌───────────────┐   ┌─────────────┐   ┌────────────┐
    │ validate +   │──▶│ find_or_create│──▶│ insert scan │──▶│ add_points │──▶ commit
    │ compute pts  │   │ (address)     │   │ record      │   │ (atomic)   │
    └──────────────┘   └───────────────┘   └─────────────┘   └────────────┘
    Any failure after validation rolls back all three writes.

Failure mapping:
    DuplicateKeyError       recovered inside find_or_create
    SQLAlchemy / driver     StorageUnavailableError (via Database.transaction)
    timeout                 LedgerTimeoutError
    everything else         propagates unchanged
    No automatic retries; callers decide.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from rescan.config import Settings
from rescan.database import Database
from rescan.exceptions import LedgerTimeoutError
from rescan.models.address import Address
from rescan.models.scan_record import ScanRecord
from rescan.schemas.scan import ADJUSTMENT, MaterialResult, ScanRecordInput, ScanStatistics
from rescan.services.address_store import AddressStore, validate_address
from rescan.services.scan_recorder import ScanRecorder

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (minimum confidence, bonus points), checked in order
CONFIDENCE_BONUSES = ((0.9, 25), (0.7, 10))


class LedgerCoordinator:
    """
    Transactional façade over AddressStore and ScanRecorder.

    Constructed once by the app factory with the application's Database and
    Settings; stateless between calls.
    """

    def __init__(self, database: Database, app_settings: Settings):
        self.database = database
        self.settings = app_settings
        self.timeout = app_settings.ledger_timeout_seconds

    # ── Helpers ───────────────────────────────────────────────────────────

    def validate_address(self, address: str) -> str:
        return validate_address(
            address,
            self.settings.address_max_length,
            self.settings.address_required_terms_list,
        )

    def _address_store(self, session) -> AddressStore:
        return AddressStore(
            session,
            max_length=self.settings.address_max_length,
            required_terms=self.settings.address_required_terms_list,
        )

    def points_for(self, material: MaterialResult) -> Tuple[int, int]:
        """
        Points earned by one identification.

        Returns:
            (points_awarded, bonus_points), where points_awarded includes
            the bonus. Recyclable: points_recyclable (100); otherwise
            points_non_recyclable (10). The confidence bonus only applies
            when confidence_bonus_enabled is set.
        """
        base = (
            self.settings.points_recyclable
            if material.is_recyclable
            else self.settings.points_non_recyclable
        )
        bonus = 0
        if self.settings.confidence_bonus_enabled and material.confidence is not None:
            for threshold, points in CONFIDENCE_BONUSES:
                if material.confidence >= threshold:
                    bonus = points
                    break
        return base + bonus, bonus

    async def _run(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(work(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Ledger operation %s exceeded %.1fs and was rolled back",
                operation,
                self.timeout,
            )
            raise LedgerTimeoutError(self.timeout, context={"operation": operation})

    # ── Mutations ─────────────────────────────────────────────────────────

    async def record_scan(
        self,
        address: str,
        material: MaterialResult,
        *,
        scan_method: str = "upload",
        original_filename: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> Tuple[ScanRecord, Address]:
        """
        Atomically credit one identification to an address.

        Creates the address if needed, appends the scan record and adds
        exactly record.points_awarded to the address total.

        Returns:
            (record, address) as committed; address.points_total is the
            total this scan produced, not a later re-read.

        Raises:
            ValidationError: malformed address (before any write).
            StorageUnavailableError / LedgerTimeoutError: nothing was written.
        """
        key = self.validate_address(address)
        points_awarded, bonus_points = self.points_for(material)
        entry = ScanRecordInput(
            address_key=key,
            material_type=material.material_type,
            is_recyclable=material.is_recyclable,
            confidence=material.confidence,
            ric_code=material.ric_code,
            description=material.description,
            points_awarded=points_awarded,
            bonus_points=bonus_points,
            scan_method=scan_method,
            original_filename=original_filename,
            image_path=image_path,
        )

        async def work() -> Tuple[ScanRecord, Address, bool]:
            async with self.database.transaction() as session:
                addresses = self._address_store(session)
                scans = ScanRecorder(session)
                _, created = await addresses.find_or_create(key)
                record = await scans.insert(entry)
                updated = await addresses.add_points(key, record.points_awarded)
            return record, updated, created

        record, updated, created = await self._run("record_scan", work)
        logger.info(
            "Scan %s credited %d points to %r (new_address=%s, total=%d)",
            record.id,
            record.points_awarded,
            key,
            created,
            updated.points_total,
        )
        return record, updated

    async def create_address(self, address: str) -> Tuple[Address, bool]:
        """Register an address if it is new. Returns (address, was_created)."""
        key = self.validate_address(address)

        async def work() -> Tuple[Address, bool]:
            async with self.database.transaction() as session:
                return await self._address_store(session).find_or_create(key)

        return await self._run("create_address", work)

    async def add_points(self, address: str, delta: int) -> Address:
        """
        Credit points directly to a registered address.

        The credit is logged as an "adjustment" scan record in the same
        transaction so the total stays equal to the sum of its records.
        A zero delta writes nothing.
        """

        async def work() -> Address:
            async with self.database.transaction() as session:
                updated = await self._address_store(session).add_points(address, delta)
                if delta:
                    await ScanRecorder(session).insert(
                        ScanRecordInput(
                            address_key=updated.key,
                            material_type=ADJUSTMENT,
                            is_recyclable=False,
                            points_awarded=delta,
                            scan_method=ADJUSTMENT,
                        )
                    )
                return updated

        updated = await self._run("add_points", work)
        logger.info("Added %s points to %r (total=%d)", delta, updated.key, updated.points_total)
        return updated

    async def attach_feedback(self, scan_id: uuid.UUID, feedback: str) -> ScanRecord:
        async def work() -> ScanRecord:
            async with self.database.transaction() as session:
                return await ScanRecorder(session).attach_feedback(scan_id, feedback)

        return await self._run("attach_feedback", work)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def lookup_address(self, address: str) -> Optional[Address]:
        async def work() -> Optional[Address]:
            async with self.database.transaction() as session:
                return await self._address_store(session).lookup(address)

        return await self._run("lookup_address", work)

    async def list_addresses(self, limit: int = 50) -> List[Address]:
        async def work() -> List[Address]:
            async with self.database.transaction() as session:
                return await self._address_store(session).list_addresses(limit)

        return await self._run("list_addresses", work)

    async def list_scans(self, address: str, limit: int = 20, offset: int = 0) -> List[ScanRecord]:
        key = self.validate_address(address)

        async def work() -> List[ScanRecord]:
            async with self.database.transaction() as session:
                return await ScanRecorder(session).list_by_address(key, limit, offset)

        return await self._run("list_scans", work)

    async def get_scan(self, scan_id: uuid.UUID) -> ScanRecord:
        async def work() -> ScanRecord:
            async with self.database.transaction() as session:
                return await ScanRecorder(session).get(scan_id)

        return await self._run("get_scan", work)

    async def scan_statistics(self, address: Optional[str] = None) -> ScanStatistics:
        key = self.validate_address(address) if address is not None else None

        async def work() -> ScanStatistics:
            async with self.database.transaction() as session:
                return await ScanRecorder(session).statistics(key)

        return await self._run("scan_statistics", work)
