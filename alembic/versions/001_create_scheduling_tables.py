"""Create scheduling, ledger and payout tables.

Revision ID: 001
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = True, now: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()") if now else None,
        nullable=nullable,
    )


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def upgrade() -> None:
    """Upgrade database schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "doctors",
        _uuid_pk(),
        sa.Column("full_name", sa.VARCHAR(length=200), nullable=False),
        sa.Column("specialization", sa.VARCHAR(length=200), nullable=True),
        sa.Column("consultation_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("consultation_fee_virtual", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at", nullable=False, now=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "doctor_patients",
        _uuid_pk(),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        _timestamp("assigned_at", nullable=False, now=True),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_doctor_patients_pair", "doctor_patients", ["doctor_id", "patient_id"])

    op.create_table(
        "rooms",
        _uuid_pk(),
        sa.Column("name", sa.VARCHAR(length=200), nullable=False),
        sa.Column("type", sa.Text(), server_default="consultation", nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at", nullable=False, now=True),
        sa.CheckConstraint(
            "type IN ('consultation', 'event_hall', 'virtual')",
            name="rooms_type_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "appointments",
        _uuid_pk(),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("room_id", postgresql.UUID(), nullable=True),
        _timestamp("start_time", nullable=False),
        _timestamp("end_time", nullable=False),
        sa.Column("is_virtual", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(), nullable=True),
        _timestamp("confirmed_at"),
        _timestamp("completed_at"),
        sa.Column("cancelled_by", postgresql.UUID(), nullable=True),
        _timestamp("cancelled_at"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        _timestamp("created_at", nullable=False, now=True),
        _timestamp("updated_at", nullable=False, now=True),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint("end_time > start_time", name="appointments_interval_check"),
        sa.CheckConstraint(
            "(is_virtual AND room_id IS NULL) OR (NOT is_virtual AND room_id IS NOT NULL)",
            name="appointments_room_check",
        ),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"]),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_appointments_doctor_start", "appointments", ["doctor_id", "start_time"])
    op.create_index("idx_appointments_room_start", "appointments", ["room_id", "start_time"])
    op.create_index("idx_appointments_patient_id", "appointments", ["patient_id"])

    op.create_table(
        "room_rentals",
        _uuid_pk(),
        sa.Column("room_id", postgresql.UUID(), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("appointment_id", postgresql.UUID(), nullable=True),
        _timestamp("start_time", nullable=False),
        _timestamp("end_time", nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        _timestamp("created_at", nullable=False, now=True),
        sa.CheckConstraint("status IN ('active', 'cancelled')", name="room_rentals_status_check"),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"]),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"]),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_room_rentals_appointment_id", "room_rentals", ["appointment_id"])

    op.create_table(
        "payments",
        _uuid_pk(),
        sa.Column("appointment_id", postgresql.UUID(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.VARCHAR(length=3), server_default="COP", nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("payment_method", sa.Text(), nullable=True),
        sa.Column("transaction_id", sa.Text(), nullable=True),
        _timestamp("paid_at"),
        sa.Column("credit_from_appointment_id", postgresql.UUID(), nullable=True),
        _timestamp("created_at", nullable=False, now=True),
        _timestamp("updated_at", nullable=False, now=True),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'failed', 'refunded', 'credit')",
            name="payments_status_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_payments_appointment_id", "payments", ["appointment_id"])

    op.create_table(
        "payouts",
        _uuid_pk(),
        sa.Column("appointment_id", postgresql.UUID(), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("consultation_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("room_rental_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("doctor_payout", sa.Numeric(12, 2), nullable=False),
        sa.Column("clinic_revenue", sa.Numeric(12, 2), nullable=False),
        sa.Column("platform_commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column(
            "requires_review", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("review_reason", sa.Text(), nullable=True),
        _timestamp("created_at", nullable=False, now=True),
        _timestamp("processed_at"),
        sa.CheckConstraint(
            "status IN ('pending', 'processed', 'failed', 'cancelled')",
            name="payouts_status_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_payouts_week_start_date", "payouts", ["week_start_date"])
    op.create_index(
        "uq_payouts_active_appointment",
        "payouts",
        ["appointment_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("uq_payouts_active_appointment", table_name="payouts")
    op.drop_index("idx_payouts_week_start_date", table_name="payouts")
    op.drop_table("payouts")

    op.drop_index("idx_payments_appointment_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("idx_room_rentals_appointment_id", table_name="room_rentals")
    op.drop_table("room_rentals")

    op.drop_index("idx_appointments_patient_id", table_name="appointments")
    op.drop_index("idx_appointments_room_start", table_name="appointments")
    op.drop_index("idx_appointments_doctor_start", table_name="appointments")
    op.drop_table("appointments")

    op.drop_table("rooms")

    op.drop_index("idx_doctor_patients_pair", table_name="doctor_patients")
    op.drop_table("doctor_patients")
    op.drop_table("doctors")
