"""Reject overlapping live bookings per doctor and per room.

Revision ID: 002
Revises: 001
Create Date: 2025-06-01 00:10:00.000000

Backs the application-level conflict check: even if two transactions slip
past the advisory locks, PostgreSQL refuses the second overlapping row.
Cancelled and no-show appointments do not hold their slot.

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.execute(
        """
        ALTER TABLE appointments
        ADD CONSTRAINT appointments_doctor_no_overlap
        EXCLUDE USING gist (
            doctor_id WITH =,
            tstzrange(start_time, end_time, '[)') WITH &&
        )
        WHERE (status NOT IN ('cancelled', 'no_show'))
        """
    )

    op.execute(
        """
        ALTER TABLE appointments
        ADD CONSTRAINT appointments_room_no_overlap
        EXCLUDE USING gist (
            room_id WITH =,
            tstzrange(start_time, end_time, '[)') WITH &&
        )
        WHERE (room_id IS NOT NULL AND status NOT IN ('cancelled', 'no_show'))
        """
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_room_no_overlap")
    op.execute(
        "ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_doctor_no_overlap"
    )
