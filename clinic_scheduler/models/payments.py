"""Payments table (payment ledger) using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from clinic_scheduler.models.base import UTCDateTime, metadata

payments = Table(
    "payments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_id", Uuid, ForeignKey("appointments.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False, server_default="COP"),
    Column("status", Text, nullable=False, server_default="pending"),
    Column("payment_method", Text, nullable=True),
    Column("transaction_id", Text, nullable=True),
    Column("paid_at", UTCDateTime, nullable=True),
    # Set on a credit row created from a cancelled appointment
    Column("credit_from_appointment_id", Uuid, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'paid', 'failed', 'refunded', 'credit')",
        name="payments_status_check",
    ),
    Index("idx_payments_appointment_id", "appointment_id"),
)
