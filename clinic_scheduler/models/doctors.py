"""Doctor directory tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
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

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("full_name", String(200), nullable=False),
    Column("specialization", String(200)),
    # Standard fee used when no valid payment amount is recorded
    Column("consultation_fee", Numeric(12, 2)),
    # Virtual consult fee; NULL means the in-person fee applies
    Column("consultation_fee_virtual", Numeric(12, 2)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
)

# Assigned doctor-patient relationships
doctor_patients = Table(
    "doctor_patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("doctor_id", Uuid, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
    Column("patient_id", Uuid, nullable=False),
    Column("status", Text, nullable=False, server_default="active"),
    Column("assigned_at", UTCDateTime, nullable=False, server_default=func.now()),
    Index("idx_doctor_patients_pair", "doctor_id", "patient_id"),
)
