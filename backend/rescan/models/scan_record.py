"""
Rescan Backend — ScanRecord SQLAlchemy Model
=============================================

What:  ORM model for the `scan_records` table: the append-only log of
       material identifications, each crediting points to one address.
Who:   Written by ScanRecorder inside the ledger transaction.

Immutability:
    Everything except user_feedback / feedback_at is fixed at insert time.
    points_awarded always equals the amount added to the address total in
    the same transaction, so SUM(points_awarded) per address reproduces
    addresses.points_total.

Query Patterns:
    - Scan history for an address, newest first:
      WHERE address_key = :key ORDER BY created_at DESC
      → idx_scan_records_address_created
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from rescan.database import Base
from rescan.models.address import utcnow


class ScanRecord(Base):
    """One recycling symbol identification and the points it earned."""

    __tablename__ = "scan_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    address_key: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("addresses.key", ondelete="RESTRICT"),
        nullable=False,
        comment="Normalized address credited by this scan",
    )

    # ── Material identification ───────────────────────────────────────────
    material_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="plastic, cardboard, paper, glass, metal, ...",
    )
    ric_code: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Resin Identification Code 1-7 for plastics",
    )
    is_recyclable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    confidence: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Identification confidence 0.0-1.0",
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Points ────────────────────────────────────────────────────────────
    points_awarded: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Total points credited (base + bonus_points)",
    )
    bonus_points: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    # ── Upload metadata ───────────────────────────────────────────────────
    scan_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="upload",
        server_default=text("'upload'"),
        comment="upload, camera, manual or adjustment",
    )
    original_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image_path: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Path relative to the storage root",
    )

    # ── Feedback (the only mutable fields) ────────────────────────────────
    user_feedback: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    feedback_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("points_awarded >= 0", name="ck_scan_records_points_non_negative"),
        CheckConstraint(
            "bonus_points >= 0 AND bonus_points <= points_awarded",
            name="ck_scan_records_bonus_within_points",
        ),
        CheckConstraint(
            "ric_code IS NULL OR (ric_code >= 1 AND ric_code <= 7)",
            name="ck_scan_records_ric_code_range",
        ),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_scan_records_confidence_range",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScanRecord(id={self.id}, address_key='{self.address_key}', "
            f"material_type='{self.material_type}', points_awarded={self.points_awarded})>"
        )


Index(
    "idx_scan_records_address_created",
    ScanRecord.address_key,
    ScanRecord.created_at.desc(),
)
