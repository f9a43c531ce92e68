"""Payouts table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Numeric,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from clinic_scheduler.models.base import UTCDateTime, metadata

payouts = Table(
    "payouts",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_id", Uuid, ForeignKey("appointments.id"), nullable=False),
    Column("doctor_id", Uuid, ForeignKey("doctors.id"), nullable=False),
    # Amounts
    Column("consultation_fee", Numeric(12, 2), nullable=False),
    Column("room_rental_cost", Numeric(12, 2), nullable=False),
    Column("doctor_payout", Numeric(12, 2), nullable=False),
    Column("clinic_revenue", Numeric(12, 2), nullable=False),
    Column("platform_commission", Numeric(12, 2), nullable=False),
    # Settlement run
    Column("status", Text, nullable=False, server_default="pending"),
    Column("week_start_date", Date, nullable=False),
    # Manual review flags
    Column("requires_review", Boolean, nullable=False, default=False),
    Column("review_reason", Text, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("processed_at", UTCDateTime, nullable=True),
    CheckConstraint(
        "status IN ('pending', 'processed', 'failed', 'cancelled')",
        name="payouts_status_check",
    ),
    Index("idx_payouts_week_start_date", "week_start_date"),
    # At most one live payout per appointment
    Index(
        "uq_payouts_active_appointment",
        "appointment_id",
        unique=True,
        postgresql_where=text("status <> 'cancelled'"),
        sqlite_where=text("status <> 'cancelled'"),
    ),
)
