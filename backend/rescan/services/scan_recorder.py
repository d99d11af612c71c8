"""
Rescan Backend — Scan Recorder
===============================

What:  Append-only log of material identifications.
How:   Bound to a caller-supplied session like AddressStore. insert() never
       touches addresses.points_total; crediting points is the
       LedgerCoordinator's job, in the same transaction.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, get_args

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rescan.exceptions import NotFoundError, ValidationError
from rescan.models.scan_record import ScanRecord
from rescan.schemas.scan import ADJUSTMENT, Feedback, ScanRecordInput, ScanStatistics
from rescan.services.address_store import normalize_address

logger = logging.getLogger(__name__)

FEEDBACK_VALUES = frozenset(get_args(Feedback))
MAX_PAGE_SIZE = 1000


class ScanRecorder:
    """ScanRecord persistence bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, record: ScanRecordInput) -> ScanRecord:
        """
        Append a scan record. Assigns id and created_at.

        Raises:
            NotFoundError: record.address_key does not reference an existing
                address (foreign-key violation).
        """
        scan = ScanRecord(
            id=uuid.uuid4(),
            created_at=datetime.now(timezone.utc),
            **record.model_dump(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(scan)
                await self.session.flush()
        except IntegrityError as e:
            raise NotFoundError(
                resource="address",
                resource_id=record.address_key,
                context={"operation": "insert_scan_record"},
            ) from e

        logger.debug("Scan record %s inserted for %r", scan.id, scan.address_key)
        return scan

    async def list_by_address(
        self,
        address: str,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ScanRecord]:
        """Records for one address, newest first. Read-only."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                message=f"Limit must be between 1 and {MAX_PAGE_SIZE}",
                field="limit",
            )
        if offset < 0:
            raise ValidationError(message="Offset must not be negative", field="offset")

        key = normalize_address(address)
        result = await self.session.execute(
            select(ScanRecord)
            .where(ScanRecord.address_key == key)
            .order_by(ScanRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get(self, scan_id: uuid.UUID) -> ScanRecord:
        scan = await self.session.get(ScanRecord, scan_id)
        if scan is None:
            raise NotFoundError(resource="scan", resource_id=str(scan_id))
        return scan

    async def attach_feedback(self, scan_id: uuid.UUID, feedback: str) -> ScanRecord:
        """
        Record the user's verdict on an identification.

        Idempotent: repeating the current feedback value changes nothing,
        feedback_at included.
        """
        if feedback not in FEEDBACK_VALUES:
            raise ValidationError(
                message=f"Feedback must be one of: {', '.join(sorted(FEEDBACK_VALUES))}",
                field="feedback",
                context={"received": feedback},
            )

        scan = await self.get(scan_id)
        if scan.user_feedback != feedback:
            scan.user_feedback = feedback
            scan.feedback_at = datetime.now(timezone.utc)
            await self.session.flush()
            logger.info("Feedback %r recorded for scan %s", feedback, scan_id)
        return scan

    async def statistics(self, address: Optional[str] = None) -> ScanStatistics:
        """
        Aggregate counts and points, for one address or the whole ledger.

        Adjustment records count toward total_points only, so total_points
        matches the addresses' points_total while scan counts and the
        material breakdown reflect real identifications.
        """
        key = normalize_address(address) if address is not None else None
        is_scan = ScanRecord.scan_method != ADJUSTMENT

        totals = select(
            func.coalesce(func.sum(case((is_scan, 1), else_=0)), 0),
            func.coalesce(
                func.sum(case((and_(is_scan, ScanRecord.is_recyclable.is_(True)), 1), else_=0)),
                0,
            ),
            func.coalesce(func.sum(ScanRecord.points_awarded), 0),
            func.count(func.distinct(case((is_scan, ScanRecord.address_key)))),
        )
        by_material = (
            select(ScanRecord.material_type, func.count(ScanRecord.id))
            .where(is_scan)
            .group_by(ScanRecord.material_type)
            .order_by(ScanRecord.material_type)
        )
        if key is not None:
            totals = totals.where(ScanRecord.address_key == key)
            by_material = by_material.where(ScanRecord.address_key == key)

        total_scans, recyclable, total_points, address_count = (
            await self.session.execute(totals)
        ).one()
        materials = {
            material: count
            for material, count in (await self.session.execute(by_material)).all()
        }

        return ScanStatistics(
            street_address=key,
            total_scans=total_scans,
            recyclable_scans=recyclable,
            non_recyclable_scans=total_scans - recyclable,
            total_points=total_points,
            recycling_rate=round(recyclable / total_scans, 4) if total_scans else 0.0,
            address_count=address_count,
            materials=materials,
        )
