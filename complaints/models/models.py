"""
Complaint Service Database Models
SQLAlchemy ORM models.

All datetime columns use DateTime(timezone=True) for proper UTC handling.
Use utc_now() from complaints.core.utc for all timestamp defaults.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from complaints.core.database import Base
from complaints.core.utc import utc_now


# Type alias for timezone-aware DateTime columns
DateTimeTZ = DateTime(timezone=True)

UNIQUE_PRODUCT_COMPLAINANT = "uq_complaints_product_complainant"


# =============================================================================
# Complaints
# =============================================================================

class ComplaintRecord(Base):
    """
    A complainant's complaint about a product.

    One row per (product_id, complainant_id); repeat submissions bump `counter`.
    `version` is bumped on every update and guards against lost updates.
    """
    __tablename__ = "complaints"
    __table_args__ = (
        UniqueConstraint("product_id", "complainant_id", name=UNIQUE_PRODUCT_COMPLAINANT),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    product_id: Mapped[str] = mapped_column(String(255))
    complainant_id: Mapped[str] = mapped_column(String(255))

    content: Mapped[str] = mapped_column(Text)
    country: Mapped[str] = mapped_column(String(100), default="Unknown")
    counter: Mapped[int] = mapped_column(Integer, default=1)
    version: Mapped[int] = mapped_column(Integer, default=1)

    # Timestamps
    creation_date: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, index=True)
    update_date: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
