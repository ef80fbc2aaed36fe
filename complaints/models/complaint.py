"""
Domain types shared by the complaint store and the complaint workflow.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from complaints.core.utc import to_utc_optional, utc_now

UNKNOWN_COUNTRY = "Unknown"


def is_unknown_country(country: Optional[str]) -> bool:
    """True for the "Unknown" placeholder (any casing) or a missing value."""
    return country is None or country.lower() == UNKNOWN_COUNTRY.lower()


@dataclass
class Complaint:
    """
    Transient copy of a stored complaint.

    `id` and `version` are None until the store has saved the complaint once.
    """
    product_id: str
    complainant_id: str
    content: str
    country: str = UNKNOWN_COUNTRY
    counter: int = 1
    creation_date: datetime = field(default_factory=utc_now)
    update_date: Optional[datetime] = None
    id: Optional[str] = None
    version: Optional[int] = None


@dataclass(frozen=True)
class ComplaintFilters:
    """
    Listing query. Every filter is optional and supplied filters are ANDed.
    Dates bound creation_date inclusively; pages are zero-based.
    """
    product_id: Optional[str] = None
    complainant_id: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    page: int = 0
    size: int = 10

    def __post_init__(self):
        # Naive bounds are taken as UTC
        object.__setattr__(self, "from_date", to_utc_optional(self.from_date))
        object.__setattr__(self, "to_date", to_utc_optional(self.to_date))

    @property
    def offset(self) -> int:
        return self.page * self.size

    def matches(self, complaint: Complaint) -> bool:
        if self.product_id is not None and complaint.product_id != self.product_id:
            return False
        if self.complainant_id is not None and complaint.complainant_id != self.complainant_id:
            return False
        if self.from_date is not None and complaint.creation_date < self.from_date:
            return False
        if self.to_date is not None and complaint.creation_date > self.to_date:
            return False
        return True


# =============================================================================
# Save outcomes
# =============================================================================

@dataclass(frozen=True)
class DuplicateKey:
    """Insert rejected: a complaint for this (product_id, complainant_id) exists."""
    product_id: str
    complainant_id: str


@dataclass(frozen=True)
class StaleWrite:
    """Update rejected: the stored version moved on since the complaint was loaded."""
    complaint_id: str
    expected_version: int


SaveResult = Union[Complaint, DuplicateKey, StaleWrite]
