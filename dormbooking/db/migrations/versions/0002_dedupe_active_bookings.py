"""Deduplicate active bookings and enforce one per user, slot and date

Revision ID: 0002_dedupe_active_bookings
Revises: 0001_initial
Create Date: 2025-11-06
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_dedupe_active_bookings"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Keep only the most recent active row for each combination
    op.execute(
        """
        WITH duplicates AS (
          SELECT id,
                 ROW_NUMBER() OVER (
                   PARTITION BY user_id, slot_id, booking_date, resource_type
                   ORDER BY created_at DESC, id DESC
                 ) AS rn
          FROM bookings
          WHERE status = 'booked'
        )
        DELETE FROM bookings
        WHERE id IN (SELECT id FROM duplicates WHERE rn > 1)
        """
    )
    op.create_index(
        "uq_active_booking_per_slot",
        "bookings",
        ["user_id", "slot_id", "booking_date", "resource_type"],
        unique=True,
        postgresql_where=sa.text("status = 'booked'"),
    )


def downgrade() -> None:
    op.drop_index("uq_active_booking_per_slot", table_name="bookings")
