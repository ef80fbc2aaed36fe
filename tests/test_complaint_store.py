"""
Tests for the SQL complaint store against SQLite.
"""
import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from complaints.models.complaint import Complaint, ComplaintFilters, DuplicateKey, StaleWrite


def complaint(product_id="P1", complainant_id="C1", **fields) -> Complaint:
    fields.setdefault("content", "broke")
    return Complaint(product_id=product_id, complainant_id=complainant_id, **fields)


# ============================================================================
# SAVE / LOOKUP
# ============================================================================

class TestSaveAndFind:

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_version(self, sql_store):
        saved = await sql_store.save(complaint(country="Poland"))

        assert isinstance(saved, Complaint)
        assert saved.id is not None
        assert saved.version == 1

        loaded = await sql_store.find_by_id(saved.id)
        assert loaded == saved
        assert loaded.creation_date.tzinfo is not None

    @pytest.mark.asyncio
    async def test_find_by_id_missing_is_none(self, sql_store):
        assert await sql_store.find_by_id("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_find_by_product_and_complainant(self, sql_store):
        saved = await sql_store.save(complaint())
        await sql_store.save(complaint(complainant_id="C2"))

        found = await sql_store.find_by_product_and_complainant("P1", "C1")

        assert found.id == saved.id
        assert await sql_store.find_by_product_and_complainant("P1", "C9") is None

    @pytest.mark.asyncio
    async def test_duplicate_pair_is_rejected(self, sql_store):
        await sql_store.save(complaint())

        result = await sql_store.save(complaint(content="again"))

        assert result == DuplicateKey("P1", "C1")

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, sql_store):
        saved = await sql_store.save(complaint())

        updated = await sql_store.save(dataclasses.replace(saved, counter=2, content="changed"))

        assert updated.version == 2
        loaded = await sql_store.find_by_id(saved.id)
        assert loaded.counter == 2
        assert loaded.content == "changed"
        assert loaded.creation_date == saved.creation_date

    @pytest.mark.asyncio
    async def test_increment_counter_is_atomic(self, sql_store):
        saved = await sql_store.save(complaint())

        results = await asyncio.gather(*[sql_store.increment_counter(saved.id) for _ in range(20)])

        assert sorted(r.counter for r in results) == list(range(2, 22))
        loaded = await sql_store.find_by_id(saved.id)
        assert loaded.counter == 21
        assert loaded.version == 21

    @pytest.mark.asyncio
    async def test_increment_counter_missing_is_none(self, sql_store):
        assert await sql_store.increment_counter("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_update_from_stale_copy_is_rejected(self, sql_store):
        saved = await sql_store.save(complaint())
        await sql_store.save(dataclasses.replace(saved, counter=2))

        result = await sql_store.save(dataclasses.replace(saved, counter=5))

        assert result == StaleWrite(saved.id, 1)
        assert (await sql_store.find_by_id(saved.id)).counter == 2


# ============================================================================
# FILTERS / PAGINATION
# ============================================================================

class TestFindByFilters:

    @pytest.fixture
    async def seeded(self, sql_store):
        base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        rows = [("P", "C1", 0), ("P", "C2", 2), ("P", "C3", 5), ("Q", "C1", 3)]
        for product, complainant, days in rows:
            await sql_store.save(complaint(product, complainant, creation_date=base + timedelta(days=days)))
        return base

    @pytest.mark.asyncio
    async def test_no_filters_returns_all(self, sql_store, seeded):
        result = await sql_store.find_by_filters(ComplaintFilters())
        assert len(result) == 4

    @pytest.mark.asyncio
    async def test_product_and_from_date_combined(self, sql_store, seeded):
        result = await sql_store.find_by_filters(
            ComplaintFilters(product_id="P", from_date=seeded + timedelta(days=2))
        )
        assert [c.complainant_id for c in result] == ["C2", "C3"]

    @pytest.mark.asyncio
    async def test_date_bounds_are_inclusive(self, sql_store, seeded):
        result = await sql_store.find_by_filters(
            ComplaintFilters(from_date=seeded + timedelta(days=2), to_date=seeded + timedelta(days=3))
        )
        assert [(c.product_id, c.complainant_id) for c in result] == [("P", "C2"), ("Q", "C1")]

    @pytest.mark.asyncio
    async def test_complainant_filter(self, sql_store, seeded):
        result = await sql_store.find_by_filters(ComplaintFilters(complainant_id="C1"))
        assert sorted(c.product_id for c in result) == ["P", "Q"]

    @pytest.mark.asyncio
    async def test_naive_bounds_are_utc(self, sql_store, seeded):
        naive = (seeded + timedelta(days=5)).replace(tzinfo=None)
        result = await sql_store.find_by_filters(ComplaintFilters(from_date=naive))
        assert [c.complainant_id for c in result] == ["C3"]

    @pytest.mark.asyncio
    async def test_pages_are_offset_based(self, sql_store, seeded):
        first = await sql_store.find_by_filters(ComplaintFilters(page=0, size=3))
        second = await sql_store.find_by_filters(ComplaintFilters(page=1, size=3))
        beyond = await sql_store.find_by_filters(ComplaintFilters(page=2, size=3))

        assert len(first) == 3
        assert len(second) == 1
        assert beyond == []
        assert {c.id for c in first}.isdisjoint({c.id for c in second})


# ============================================================================
# WORKFLOW ON TOP OF SQL
# ============================================================================

class TestConcurrentSubmissions:

    @pytest.mark.asyncio
    async def test_concurrent_creates_leave_one_row(self, sql_service, sql_store):
        await asyncio.gather(*[
            sql_service.create_complaint("P1", "broke", "C1", "1.2.3.4")
            for _ in range(20)
        ])

        rows = await sql_store.find_by_filters(ComplaintFilters(product_id="P1"))
        assert len(rows) == 1
        assert rows[0].counter == 20
