"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Table,
    Text,
    Uuid,
    func,
)

from clinic_scheduler.models.base import UTCDateTime, metadata

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # References owned by directory collaborators
    Column("doctor_id", Uuid, ForeignKey("doctors.id"), nullable=False),
    Column("patient_id", Uuid, nullable=False),
    Column("room_id", Uuid, ForeignKey("rooms.id"), nullable=True),
    # Interval, end_time is always start_time + the configured duration
    Column("start_time", UTCDateTime, nullable=False),
    Column("end_time", UTCDateTime, nullable=False),
    Column("is_virtual", Boolean, nullable=False, default=False),
    # Status management
    Column("status", Text, nullable=False, server_default="pending"),
    Column("notes", Text, nullable=True),
    # Audit fields
    Column("created_by", Uuid, nullable=True),
    Column("confirmed_at", UTCDateTime, nullable=True),
    Column("completed_at", UTCDateTime, nullable=True),
    Column("cancelled_by", Uuid, nullable=True),
    Column("cancelled_at", UTCDateTime, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    Column("updated_at", UTCDateTime, nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint("end_time > start_time", name="appointments_interval_check"),
    CheckConstraint(
        "(is_virtual AND room_id IS NULL) OR (NOT is_virtual AND room_id IS NOT NULL)",
        name="appointments_room_check",
    ),
    Index("idx_appointments_doctor_start", "doctor_id", "start_time"),
    Index("idx_appointments_room_start", "room_id", "start_time"),
    Index("idx_appointments_patient_id", "patient_id"),
)
