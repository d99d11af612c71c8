"""Create addresses and scan_records tables

Revision ID: 001
Revises: None
Create Date: 2024-09-15 00:00:00.000000+00:00

What:  Initial points ledger schema.
How:   Portable column types (UUID stored as CHAR(32) on SQLite, native on
       PostgreSQL). Point totals are guarded by CHECK constraints so no write
       path can drive them negative.

Rollback: downgrade() drops both tables (all ledger data is lost).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "addresses",
        sa.Column(
            "key",
            sa.String(255),
            nullable=False,
            comment="Normalized street address (trimmed, case-folded)",
        ),
        sa.Column(
            "points_total",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Sum of points_awarded over this address's scan records",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
            comment="Last time points were credited",
        ),
        sa.PrimaryKeyConstraint("key"),
        sa.CheckConstraint("points_total >= 0", name="ck_addresses_points_total_non_negative"),
    )

    op.create_table(
        "scan_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "address_key",
            sa.String(255),
            nullable=False,
            comment="Normalized address credited by this scan",
        ),
        sa.Column("material_type", sa.String(50), nullable=False),
        sa.Column(
            "ric_code",
            sa.Integer(),
            nullable=True,
            comment="Resin Identification Code 1-7 for plastics",
        ),
        sa.Column("is_recyclable", sa.Boolean(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "points_awarded",
            sa.Integer(),
            nullable=False,
            comment="Total points credited (base + bonus_points)",
        ),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "scan_method",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'upload'"),
        ),
        sa.Column("original_filename", sa.String(255), nullable=True),
        sa.Column("image_path", sa.String(255), nullable=True),
        sa.Column("user_feedback", sa.String(30), nullable=True),
        sa.Column("feedback_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["address_key"], ["addresses.key"], ondelete="RESTRICT"),
        sa.CheckConstraint("points_awarded >= 0", name="ck_scan_records_points_non_negative"),
        sa.CheckConstraint(
            "bonus_points >= 0 AND bonus_points <= points_awarded",
            name="ck_scan_records_bonus_within_points",
        ),
        sa.CheckConstraint(
            "ric_code IS NULL OR (ric_code >= 1 AND ric_code <= 7)",
            name="ck_scan_records_ric_code_range",
        ),
        sa.CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_scan_records_confidence_range",
        ),
    )

    # Scan history for one address, newest first
    op.create_index(
        "idx_scan_records_address_created",
        "scan_records",
        ["address_key", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_scan_records_address_created", table_name="scan_records")
    op.drop_table("scan_records")
    op.drop_table("addresses")
