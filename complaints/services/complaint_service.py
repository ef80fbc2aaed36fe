"""
Complaint Service
=================

The complaint lifecycle:

- create: one record per (product, complainant). A repeat submission only
  bumps the counter. A first submission resolves the submitter's country
  and inserts; if a concurrent first submission won the insert, this one
  falls back to bumping the winner's counter.
- update: replaces the content, and fills in the country if it is still
  "Unknown" and the lookup now succeeds. A known country is never touched.
- get / list: reads.

Counter bumps are a single atomic store operation. Content updates go
through ComplaintStore.save; lost optimistic-concurrency races are retried
against a freshly loaded copy.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from complaints.core.config import Settings
from complaints.core.errors import ComplaintNotFoundError, ConcurrentModificationError
from complaints.core.utc import utc_now
from complaints.models.complaint import (
    Complaint,
    ComplaintFilters,
    DuplicateKey,
    is_unknown_country,
)
from complaints.services.complaint_store import ComplaintStore
from complaints.services.geolocation import GeoLocationClient

logger = logging.getLogger(__name__)


class ComplaintService:
    """Create, update and query complaints."""

    def __init__(self, store: ComplaintStore, geolocation: GeoLocationClient, settings: Settings):
        self.store = store
        self.geolocation = geolocation
        self.max_conflict_retries = settings.save_conflict_retries

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_complaint(
        self, product_id: str, content: str, complainant_id: str, ip_address: str
    ) -> Complaint:
        logger.debug(
            "Creating complaint for product ID: %s from complainant ID: %s",
            product_id, complainant_id,
        )
        existing = await self.store.find_by_product_and_complainant(product_id, complainant_id)
        if existing is not None:
            return await self._increment_counter(existing)
        return await self._create_new_complaint(product_id, content, complainant_id, ip_address)

    async def _create_new_complaint(
        self, product_id: str, content: str, complainant_id: str, ip_address: str
    ) -> Complaint:
        country = await self.geolocation.get_country_from_ip(ip_address)
        complaint = Complaint(
            product_id=product_id,
            complainant_id=complainant_id,
            content=content,
            country=country,
        )
        result = await self.store.save(complaint)
        if isinstance(result, Complaint):
            logger.info("New complaint saved with ID: %s", result.id)
            return result

        # Another request inserted this pair between our lookup and our insert
        logger.debug(
            "Complaint for product %s / complainant %s created concurrently, incrementing counter",
            product_id, complainant_id,
        )
        winner = await self.store.find_by_product_and_complainant(product_id, complainant_id)
        if winner is None:
            # Only possible if the constraint fired for a record we cannot see
            raise RuntimeError(
                f"Duplicate key reported for product {product_id} / complainant "
                f"{complainant_id} but no complaint was found"
            )
        return await self._increment_counter(winner)

    async def _increment_counter(self, complaint: Complaint) -> Complaint:
        logger.debug("Complaint %s already exists, incrementing counter", complaint.id)
        incremented = await self.store.increment_counter(complaint.id)
        if incremented is None:
            raise ComplaintNotFoundError(complaint.id)
        return incremented

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update_complaint_content(self, complaint_id: str, content: str, ip_address: str) -> Complaint:
        logger.debug("Updating content for complaint ID: %s", complaint_id)
        complaint = await self.store.find_by_id(complaint_id)
        if complaint is None:
            raise ComplaintNotFoundError(complaint_id)

        resolved_country: Optional[str] = None

        async def enrich_and_apply(current: Complaint) -> Complaint:
            nonlocal resolved_country
            if is_unknown_country(current.country):
                # One lookup per request, even if the save has to be retried
                if resolved_country is None:
                    resolved_country = await self.geolocation.get_country_from_ip(ip_address)
                if not is_unknown_country(resolved_country):
                    logger.debug("Enriching complaint %s with country: %s", current.id, resolved_country)
                    current.country = resolved_country
            current.content = content
            current.update_date = utc_now()
            return current

        updated = await self._save_with_retry(complaint, enrich_and_apply)
        logger.debug("Updated complaint ID: %s", updated.id)
        return updated

    # =========================================================================
    # READ
    # =========================================================================

    async def get_complaint_by_id(self, complaint_id: str) -> Complaint:
        logger.debug("Getting complaint by ID: %s", complaint_id)
        complaint = await self.store.find_by_id(complaint_id)
        if complaint is None:
            raise ComplaintNotFoundError(complaint_id)
        return complaint

    async def get_complaints(
        self,
        product_id: Optional[str] = None,
        complainant_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        page: int = 0,
        size: int = 10,
    ) -> List[Complaint]:
        filters = ComplaintFilters(
            product_id=product_id,
            complainant_id=complainant_id,
            from_date=from_date,
            to_date=to_date,
            page=page,
            size=size,
        )
        return await self.store.find_by_filters(filters)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _save_with_retry(self, complaint: Complaint, mutate: Callable) -> Complaint:
        """
        Apply `mutate` to the complaint and save it. When another writer got
        there first, reload and apply `mutate` again to the fresh copy.

        `mutate` is a coroutine function.
        """
        current = complaint
        for _ in range(self.max_conflict_retries + 1):
            mutated = await mutate(current)
            result = await self.store.save(mutated)
            if isinstance(result, Complaint):
                return result
            if isinstance(result, DuplicateKey):
                # Updates never change the unique pair
                raise RuntimeError(f"Unexpected duplicate key while updating complaint {complaint.id}")

            logger.debug("Complaint %s changed underneath us (version %s), reloading",
                         result.complaint_id, result.expected_version)
            reloaded = await self.store.find_by_id(complaint.id)
            if reloaded is None:
                raise ComplaintNotFoundError(complaint.id)
            current = reloaded

        raise ConcurrentModificationError(complaint.id, self.max_conflict_retries + 1)
