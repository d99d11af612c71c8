"""
Rescan Backend — Ledger Coordinator Tests
==========================================

What:  The all-or-nothing record_scan transaction and the ledger façade.

What we test:
    ✅ New address + recyclable scan → total 100, one record of 100
    ✅ Second, non-recyclable scan → total 110, two records
    ✅ Concurrent first scans for one address → one row, summed total
    ✅ points_total == SUM(points_awarded) for every address
    ✅ A storage failure mid-transaction leaves no trace
    ✅ A transaction exceeding its time bound is rolled back
    ✅ Confidence bonus only when enabled
    ✅ Direct point credits are logged as adjustment records
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from rescan.exceptions import (
    LedgerTimeoutError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from rescan.schemas.scan import MaterialResult
from rescan.services.address_store import AddressStore
from rescan.services.ledger import LedgerCoordinator
from rescan.services.scan_recorder import ScanRecorder


class TestRecordScan:

    @pytest.mark.asyncio
    async def test_first_scan_creates_address(self, ledger, recyclable_pet):
        """New address, recyclable item: total 100 and one record of 100."""
        record, credited = await ledger.record_scan("123 Oak Street", recyclable_pet)

        address = await ledger.lookup_address("123 oak street")
        scans = await ledger.list_scans("123 Oak Street")

        assert record.points_awarded == 100
        assert record.bonus_points == 0
        assert address.points_total == credited.points_total == 100
        assert len(scans) == 1
        assert scans[0].points_awarded == 100
        assert scans[0].address_key == "123 oak street"

    @pytest.mark.asyncio
    async def test_second_scan_accumulates(self, ledger, recyclable_pet, non_recyclable_ps):
        """Same address, non-recyclable item: total 110 across two records."""
        await ledger.record_scan("123 Oak Street", recyclable_pet)
        second, credited = await ledger.record_scan("  123 OAK STREET", non_recyclable_ps)

        address = await ledger.lookup_address("123 Oak Street")
        scans = await ledger.list_scans("123 Oak Street")

        assert second.points_awarded == 10
        assert credited.points_total == 110
        assert address.points_total == 110
        assert len(scans) == 2
        assert sorted(s.points_awarded for s in scans) == [10, 100]

    @pytest.mark.asyncio
    async def test_records_upload_metadata(self, ledger, recyclable_pet):
        record, _ = await ledger.record_scan(
            "123 Oak Street",
            recyclable_pet,
            scan_method="camera",
            original_filename="bottle.jpg",
            image_path="2024/09/15/abc.jpg",
        )
        stored = await ledger.get_scan(record.id)
        assert stored.scan_method == "camera"
        assert stored.original_filename == "bottle.jpg"
        assert stored.image_path == "2024/09/15/abc.jpg"
        assert stored.ric_code == 1

    @pytest.mark.asyncio
    async def test_invalid_address_writes_nothing(self, ledger, recyclable_pet):
        with pytest.raises(ValidationError):
            await ledger.record_scan("   ", recyclable_pet)
        stats = await ledger.scan_statistics()
        assert stats.total_scans == 0
        assert await ledger.list_addresses() == []

    @pytest.mark.asyncio
    async def test_concurrent_first_scans(self, ledger, recyclable_pet, non_recyclable_ps):
        """Racing creators never produce a second address row."""
        materials = [recyclable_pet, non_recyclable_ps] * 5

        results = await asyncio.gather(
            *(ledger.record_scan("77 Maple Drive", m) for m in materials)
        )

        addresses = await ledger.list_addresses()
        assert len(addresses) == 1
        assert addresses[0].key == "77 maple drive"
        assert addresses[0].points_total == sum(r.points_awarded for r, _ in results) == 550
        assert len(await ledger.list_scans("77 Maple Drive", limit=100)) == 10

    @pytest.mark.asyncio
    async def test_conservation_across_addresses(self, ledger, recyclable_pet, non_recyclable_ps):
        plan = [
            ("1 First St", recyclable_pet),
            ("2 Second St", non_recyclable_ps),
            ("1 first st", non_recyclable_ps),
            ("2 SECOND ST", recyclable_pet),
            ("1 First St", recyclable_pet),
        ]
        for address, material in plan:
            await ledger.record_scan(address, material)

        for address in await ledger.list_addresses():
            stats = await ledger.scan_statistics(address.key)
            assert address.points_total == stats.total_points
        overall = await ledger.scan_statistics()
        assert overall.total_points == 100 + 10 + 10 + 100 + 100

    @pytest.mark.asyncio
    async def test_totals_never_decrease(self, ledger, recyclable_pet, non_recyclable_ps):
        totals = []
        for material in [recyclable_pet, non_recyclable_ps, non_recyclable_ps, recyclable_pet]:
            await ledger.record_scan("5 Birch Ct", material)
            totals.append((await ledger.lookup_address("5 Birch Ct")).points_total)
        assert totals == sorted(totals)
        assert totals[-1] == 220


class TestAtomicity:

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back_everything(self, ledger, recyclable_pet):
        failure = OperationalError("UPDATE addresses", {}, Exception("disk I/O error"))
        with patch.object(AddressStore, "add_points", AsyncMock(side_effect=failure)):
            with pytest.raises(StorageUnavailableError):
                await ledger.record_scan("123 Oak Street", recyclable_pet)

        # Neither the address nor the scan record survived
        assert await ledger.lookup_address("123 Oak Street") is None
        assert (await ledger.scan_statistics()).total_scans == 0

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_total(self, ledger, recyclable_pet):
        await ledger.record_scan("123 Oak Street", recyclable_pet)

        failure = OperationalError("UPDATE addresses", {}, Exception("database is locked"))
        with patch.object(AddressStore, "add_points", AsyncMock(side_effect=failure)):
            with pytest.raises(StorageUnavailableError):
                await ledger.record_scan("123 Oak Street", recyclable_pet)

        assert (await ledger.lookup_address("123 Oak Street")).points_total == 100
        assert len(await ledger.list_scans("123 Oak Street")) == 1

    @pytest.mark.asyncio
    async def test_timeout_rolls_back(self, database, app_settings, recyclable_pet):
        slow_ledger = LedgerCoordinator(
            database,
            app_settings.model_copy(update={"ledger_timeout_seconds": 0.2}),
        )

        async def slow_insert(self, record):
            await asyncio.sleep(5)

        with patch.object(ScanRecorder, "insert", slow_insert):
            with pytest.raises(LedgerTimeoutError) as exc_info:
                await slow_ledger.record_scan("123 Oak Street", recyclable_pet)

        assert isinstance(exc_info.value, StorageUnavailableError)
        # The address created earlier in the same transaction was rolled back
        assert await slow_ledger.lookup_address("123 Oak Street") is None


class TestPointRules:
    """points_for() is pure; no database needed."""

    def test_canonical_rules(self, app_settings, recyclable_pet, non_recyclable_ps):
        ledger = LedgerCoordinator(MagicMock(), app_settings)
        assert ledger.points_for(recyclable_pet) == (100, 0)
        assert ledger.points_for(non_recyclable_ps) == (10, 0)

    def test_confidence_ignored_when_bonus_disabled(self, app_settings):
        ledger = LedgerCoordinator(MagicMock(), app_settings)
        sure = MaterialResult(material_type="glass", is_recyclable=True, confidence=0.99)
        assert ledger.points_for(sure) == (100, 0)

    @pytest.mark.parametrize(
        "confidence,expected",
        [(0.95, (125, 25)), (0.9, (125, 25)), (0.75, (110, 10)), (0.5, (100, 0)), (None, (100, 0))],
    )
    def test_confidence_bonus(self, app_settings, confidence, expected):
        bonus_ledger = LedgerCoordinator(
            MagicMock(),
            app_settings.model_copy(update={"confidence_bonus_enabled": True}),
        )
        material = MaterialResult(material_type="glass", is_recyclable=True, confidence=confidence)
        assert bonus_ledger.points_for(material) == expected

    @pytest.mark.asyncio
    async def test_bonus_is_credited(self, database, app_settings):
        bonus_ledger = LedgerCoordinator(
            database,
            app_settings.model_copy(update={"confidence_bonus_enabled": True}),
        )
        material = MaterialResult(material_type="aluminum", is_recyclable=True, confidence=0.92)

        record, _ = await bonus_ledger.record_scan("3 Ash Way", material)

        assert record.points_awarded == 125
        assert record.bonus_points == 25
        assert (await bonus_ledger.lookup_address("3 Ash Way")).points_total == 125


class TestFacade:

    @pytest.mark.asyncio
    async def test_create_address_is_idempotent(self, ledger):
        created, was_created = await ledger.create_address("10 Main St")
        again, again_created = await ledger.create_address("10 MAIN ST ")
        assert (was_created, again_created) == (True, False)
        assert created.key == again.key == "10 main st"

    @pytest.mark.asyncio
    async def test_add_points(self, ledger):
        await ledger.create_address("10 Main St")
        updated = await ledger.add_points("10 Main St", 40)
        assert updated.points_total == 40

        scans = await ledger.list_scans("10 Main St")
        assert len(scans) == 1
        assert scans[0].scan_method == "adjustment"
        assert scans[0].points_awarded == 40

    @pytest.mark.asyncio
    async def test_add_points_keeps_total_equal_to_records(self, ledger, recyclable_pet):
        await ledger.record_scan("10 Main St", recyclable_pet)
        updated = await ledger.add_points("10 Main St", 500)

        stats = await ledger.scan_statistics("10 Main St")
        assert updated.points_total == stats.total_points == 600
        # Adjustments are not identifications
        assert stats.total_scans == 1
        assert stats.materials == {"plastic": 1}

    @pytest.mark.asyncio
    async def test_add_zero_points_writes_no_record(self, ledger):
        await ledger.create_address("10 Main St")
        updated = await ledger.add_points("10 Main St", 0)
        assert updated.points_total == 0
        assert await ledger.list_scans("10 Main St") == []

    @pytest.mark.asyncio
    async def test_add_points_unknown_address(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.add_points("nonexistent", 10)
        assert await ledger.lookup_address("nonexistent") is None

    @pytest.mark.asyncio
    async def test_add_negative_points(self, ledger):
        await ledger.create_address("10 Main St")
        with pytest.raises(ValidationError):
            await ledger.add_points("10 Main St", -5)
        assert (await ledger.lookup_address("10 Main St")).points_total == 0

    @pytest.mark.asyncio
    async def test_feedback_does_not_change_points(self, ledger, recyclable_pet):
        record, _ = await ledger.record_scan("10 Main St", recyclable_pet)
        updated = await ledger.attach_feedback(record.id, "incorrect")
        assert updated.user_feedback == "incorrect"
        assert (await ledger.lookup_address("10 Main St")).points_total == 100

    @pytest.mark.asyncio
    async def test_required_terms_apply_to_record_scan(self, database, app_settings, recyclable_pet):
        regional = LedgerCoordinator(
            database,
            app_settings.model_copy(update={"address_required_terms": "nj,new jersey"}),
        )
        await regional.record_scan("10 Main St, Newark NJ", recyclable_pet)
        with pytest.raises(ValidationError):
            await regional.record_scan("10 Main St, Albany NY", recyclable_pet)
