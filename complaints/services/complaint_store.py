"""
Complaint Store
===============

Persistence gateway for complaints. Two implementations share one contract:

- SqlComplaintStore: async SQLAlchemy (SQLite for dev/tests, PostgreSQL in prod)
- InMemoryComplaintStore: process-local, for running without a database

Absence is reported as None. `save` reports a uniqueness violation as
DuplicateKey and a lost optimistic-concurrency race as StaleWrite instead of
raising, so callers decide how to reconcile. `increment_counter` is a single
atomic store operation and never conflicts.
"""

import asyncio
import dataclasses
import logging
import uuid
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from complaints.core.utc import to_utc, to_utc_optional
from complaints.models.complaint import (
    Complaint,
    ComplaintFilters,
    DuplicateKey,
    SaveResult,
    StaleWrite,
)
from complaints.models.models import ComplaintRecord

logger = logging.getLogger(__name__)


class ComplaintStore(Protocol):
    """Contract the complaint workflow relies on."""

    async def find_by_id(self, complaint_id: str) -> Optional[Complaint]: ...

    async def find_by_product_and_complainant(
        self, product_id: str, complainant_id: str
    ) -> Optional[Complaint]: ...

    async def find_by_filters(self, filters: ComplaintFilters) -> List[Complaint]: ...

    async def increment_counter(self, complaint_id: str) -> Optional[Complaint]: ...

    async def save(self, complaint: Complaint) -> SaveResult: ...


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# SQL STORE
# =============================================================================

def _to_domain(record: ComplaintRecord) -> Complaint:
    # SQLite hands back naive datetimes; everything stored is UTC
    return Complaint(
        id=record.id,
        product_id=record.product_id,
        complainant_id=record.complainant_id,
        content=record.content,
        country=record.country,
        counter=record.counter,
        creation_date=to_utc(record.creation_date),
        update_date=to_utc_optional(record.update_date),
        version=record.version,
    )


class SqlComplaintStore:
    """ComplaintStore backed by the `complaints` table."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, complaint_id: str) -> Optional[Complaint]:
        async with self._session_factory() as session:
            record = await session.get(ComplaintRecord, complaint_id)
            return _to_domain(record) if record is not None else None

    async def find_by_product_and_complainant(
        self, product_id: str, complainant_id: str
    ) -> Optional[Complaint]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ComplaintRecord).where(
                    and_(
                        ComplaintRecord.product_id == product_id,
                        ComplaintRecord.complainant_id == complainant_id,
                    )
                )
            )
            record = result.scalar_one_or_none()
            return _to_domain(record) if record is not None else None

    async def find_by_filters(self, filters: ComplaintFilters) -> List[Complaint]:
        conditions = []
        if filters.product_id is not None:
            conditions.append(ComplaintRecord.product_id == filters.product_id)
        if filters.complainant_id is not None:
            conditions.append(ComplaintRecord.complainant_id == filters.complainant_id)
        if filters.from_date is not None:
            conditions.append(ComplaintRecord.creation_date >= filters.from_date)
        if filters.to_date is not None:
            conditions.append(ComplaintRecord.creation_date <= filters.to_date)

        query = select(ComplaintRecord)
        if conditions:
            query = query.where(and_(*conditions))
        query = (
            query.order_by(ComplaintRecord.creation_date, ComplaintRecord.id)
            .offset(filters.offset)
            .limit(filters.size)
        )

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_domain(record) for record in result.scalars().all()]

    async def save(self, complaint: Complaint) -> SaveResult:
        if complaint.id is None:
            return await self._insert(complaint)
        return await self._update(complaint)

    async def increment_counter(self, complaint_id: str) -> Optional[Complaint]:
        statement = (
            update(ComplaintRecord)
            .where(ComplaintRecord.id == complaint_id)
            .values(
                counter=ComplaintRecord.counter + 1,
                version=ComplaintRecord.version + 1,
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                await session.rollback()
                return None
            # Same transaction, so this reads our own increment
            record = await session.get(ComplaintRecord, complaint_id)
            complaint = _to_domain(record)
            await session.commit()
        return complaint

    async def _insert(self, complaint: Complaint) -> SaveResult:
        saved = dataclasses.replace(complaint, id=_new_id(), version=1)
        record = ComplaintRecord(
            id=saved.id,
            product_id=saved.product_id,
            complainant_id=saved.complainant_id,
            content=saved.content,
            country=saved.country,
            counter=saved.counter,
            version=saved.version,
            creation_date=saved.creation_date,
            update_date=saved.update_date,
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    "Duplicate complaint for product %s / complainant %s",
                    complaint.product_id, complaint.complainant_id,
                )
                return DuplicateKey(complaint.product_id, complaint.complainant_id)
        return saved

    async def _update(self, complaint: Complaint) -> SaveResult:
        expected_version = complaint.version or 1
        saved = dataclasses.replace(complaint, version=expected_version + 1)
        statement = (
            update(ComplaintRecord)
            .where(
                and_(
                    ComplaintRecord.id == complaint.id,
                    ComplaintRecord.version == expected_version,
                )
            )
            .values(
                content=saved.content,
                country=saved.country,
                counter=saved.counter,
                update_date=saved.update_date,
                version=saved.version,
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
        if result.rowcount != 1:
            logger.debug("Stale write for complaint %s at version %s", complaint.id, expected_version)
            return StaleWrite(complaint.id, expected_version)
        return saved


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class InMemoryComplaintStore:
    """
    ComplaintStore kept in a dict. Saves run under a lock, so the uniqueness
    and version checks are atomic with the write.
    """

    def __init__(self):
        self._complaints: Dict[str, Complaint] = {}
        self._lock = asyncio.Lock()

    async def find_by_id(self, complaint_id: str) -> Optional[Complaint]:
        stored = self._complaints.get(complaint_id)
        return dataclasses.replace(stored) if stored is not None else None

    async def find_by_product_and_complainant(
        self, product_id: str, complainant_id: str
    ) -> Optional[Complaint]:
        for stored in self._complaints.values():
            if stored.product_id == product_id and stored.complainant_id == complainant_id:
                return dataclasses.replace(stored)
        return None

    async def find_by_filters(self, filters: ComplaintFilters) -> List[Complaint]:
        matching = [c for c in self._complaints.values() if filters.matches(c)]
        page = matching[filters.offset:filters.offset + filters.size]
        return [dataclasses.replace(c) for c in page]

    async def increment_counter(self, complaint_id: str) -> Optional[Complaint]:
        async with self._lock:
            stored = self._complaints.get(complaint_id)
            if stored is None:
                return None
            saved = dataclasses.replace(stored, counter=stored.counter + 1, version=stored.version + 1)
            self._complaints[complaint_id] = saved
            return dataclasses.replace(saved)

    async def save(self, complaint: Complaint) -> SaveResult:
        async with self._lock:
            if complaint.id is None:
                for stored in self._complaints.values():
                    if (stored.product_id == complaint.product_id
                            and stored.complainant_id == complaint.complainant_id):
                        return DuplicateKey(complaint.product_id, complaint.complainant_id)
                saved = dataclasses.replace(complaint, id=_new_id(), version=1)
            else:
                stored = self._complaints.get(complaint.id)
                if stored is None or stored.version != complaint.version:
                    return StaleWrite(complaint.id, complaint.version or 1)
                saved = dataclasses.replace(complaint, version=stored.version + 1)
            self._complaints[saved.id] = saved
            return dataclasses.replace(saved)

    def __len__(self) -> int:
        return len(self._complaints)


def create_store(backend: str, session_factory: Optional[async_sessionmaker] = None) -> ComplaintStore:
    """Build the store selected by the STORE_BACKEND setting."""
    if backend == "memory":
        logger.info("Using in-memory complaint store")
        return InMemoryComplaintStore()
    if session_factory is None:
        from complaints.core.database import get_session_factory
        session_factory = get_session_factory()
    return SqlComplaintStore(session_factory)
