"""
Rescan Backend — Address SQLAlchemy Model
==========================================

What:  ORM model for the `addresses` table: one row per registered street
       address with its cumulative point total.
Who:   Read and written only through AddressStore.

Table Design:
    - key: the normalized address (trimmed, case-folded) is the natural
      primary key, so uniqueness is enforced by the database itself.
    - points_total: changed only by an atomic in-place increment
      (points_total = points_total + :delta), never by read-modify-write.
      The CHECK constraint rejects any write that would make it negative.
    - Rows are never deleted; scan_records reference them by key.
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from rescan.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Address(Base):
    """A street address and the points credited to it."""

    __tablename__ = "addresses"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Normalized street address (trimmed, case-folded)",
    )

    points_total: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Sum of points_awarded over this address's scan records",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        comment="Last time points were credited",
    )

    __table_args__ = (
        CheckConstraint("points_total >= 0", name="ck_addresses_points_total_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Address(key='{self.key}', points_total={self.points_total})>"
