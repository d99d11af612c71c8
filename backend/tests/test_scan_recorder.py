"""
Rescan Backend — ScanRecorder Tests
====================================

What:  Append-only scan log: insert, listing, feedback and statistics.
"""

import uuid

import pytest

from rescan.exceptions import NotFoundError, ValidationError
from rescan.schemas.scan import ScanRecordInput
from rescan.services.address_store import AddressStore
from rescan.services.scan_recorder import ScanRecorder


def make_input(address_key="123 oak street", **overrides) -> ScanRecordInput:
    fields = dict(
        address_key=address_key,
        material_type="plastic",
        ric_code=1,
        is_recyclable=True,
        confidence=0.85,
        points_awarded=100,
    )
    fields.update(overrides)
    return ScanRecordInput(**fields)


async def insert_scans(database, *inputs):
    async with database.transaction() as session:
        store = AddressStore(session)
        for entry in inputs:
            await store.find_or_create(entry.address_key)
        recorder = ScanRecorder(session)
        return [await recorder.insert(entry) for entry in inputs]


class TestInsert:

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamp(self, database):
        (record,) = await insert_scans(database, make_input())
        assert isinstance(record.id, uuid.UUID)
        assert record.created_at is not None
        assert record.points_awarded == 100
        assert record.user_feedback is None

    @pytest.mark.asyncio
    async def test_insert_does_not_touch_points_total(self, database):
        await insert_scans(database, make_input())
        async with database.transaction() as session:
            address = await AddressStore(session).get("123 oak street")
        assert address.points_total == 0

    @pytest.mark.asyncio
    async def test_insert_unknown_address_raises_not_found(self, database):
        with pytest.raises(NotFoundError):
            async with database.transaction() as session:
                await ScanRecorder(session).insert(make_input("1 ghost st"))


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_by_address_scoped_and_paged(self, database):
        await insert_scans(
            database,
            make_input(),
            make_input(material_type="cardboard", ric_code=None),
            make_input(is_recyclable=False, points_awarded=10),
            make_input("9 pine rd"),
        )

        async with database.transaction() as session:
            recorder = ScanRecorder(session)
            everything = await recorder.list_by_address("  123 OAK Street")
            first_page = await recorder.list_by_address("123 oak street", limit=2)
            second_page = await recorder.list_by_address("123 oak street", limit=2, offset=2)

        assert len(everything) == 3
        assert all(r.address_key == "123 oak street" for r in everything)
        assert [r.created_at for r in everything] == sorted(
            (r.created_at for r in everything), reverse=True
        )
        assert len(first_page) == 2
        assert len(second_page) == 1
        assert {r.id for r in first_page}.isdisjoint({r.id for r in second_page})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit,offset", [(0, 0), (1001, 0), (10, -1)])
    async def test_list_by_address_rejects_bad_paging(self, database, limit, offset):
        async with database.transaction() as session:
            with pytest.raises(ValidationError):
                await ScanRecorder(session).list_by_address("123 oak street", limit, offset)

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, database):
        async with database.transaction() as session:
            with pytest.raises(NotFoundError):
                await ScanRecorder(session).get(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_statistics(self, database):
        await insert_scans(
            database,
            make_input(),
            make_input(material_type="cardboard", ric_code=None),
            make_input(ric_code=6, is_recyclable=False, points_awarded=10),
            make_input("9 pine rd"),
        )

        async with database.transaction() as session:
            recorder = ScanRecorder(session)
            overall = await recorder.statistics()
            scoped = await recorder.statistics("123 Oak Street")

        assert overall.total_scans == 4
        assert overall.recyclable_scans == 3
        assert overall.non_recyclable_scans == 1
        assert overall.total_points == 310
        assert overall.address_count == 2
        assert overall.materials == {"cardboard": 1, "plastic": 3}

        assert scoped.street_address == "123 oak street"
        assert scoped.total_scans == 3
        assert scoped.total_points == 210
        assert scoped.recycling_rate == pytest.approx(2 / 3, abs=1e-4)

    @pytest.mark.asyncio
    async def test_statistics_empty_ledger(self, database):
        async with database.transaction() as session:
            stats = await ScanRecorder(session).statistics()
        assert stats.total_scans == 0
        assert stats.total_points == 0
        assert stats.recycling_rate == 0.0
        assert stats.materials == {}


class TestFeedback:

    @pytest.mark.asyncio
    async def test_attach_feedback(self, database):
        (record,) = await insert_scans(database, make_input())
        async with database.transaction() as session:
            updated = await ScanRecorder(session).attach_feedback(record.id, "correct")
        assert updated.user_feedback == "correct"
        assert updated.feedback_at is not None
        assert updated.points_awarded == 100

    @pytest.mark.asyncio
    async def test_repeated_feedback_is_idempotent(self, database):
        (record,) = await insert_scans(database, make_input())
        async with database.transaction() as session:
            await ScanRecorder(session).attach_feedback(record.id, "incorrect")
        async with database.transaction() as session:
            stored_at = (await ScanRecorder(session).get(record.id)).feedback_at
        async with database.transaction() as session:
            second = await ScanRecorder(session).attach_feedback(record.id, "incorrect")
        assert second.user_feedback == "incorrect"
        assert second.feedback_at == stored_at

    @pytest.mark.asyncio
    async def test_unknown_feedback_rejected(self, database):
        (record,) = await insert_scans(database, make_input())
        async with database.transaction() as session:
            with pytest.raises(ValidationError, match="Feedback must be one of"):
                await ScanRecorder(session).attach_feedback(record.id, "meh")

    @pytest.mark.asyncio
    async def test_feedback_for_missing_scan(self, database):
        async with database.transaction() as session:
            with pytest.raises(NotFoundError):
                await ScanRecorder(session).attach_feedback(uuid.uuid4(), "correct")
