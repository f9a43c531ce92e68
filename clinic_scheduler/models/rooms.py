"""Room and room rental tables (facilities directory)."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
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

rooms = Table(
    "rooms",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", String(200), nullable=False),
    Column("type", Text, nullable=False, server_default="consultation"),
    Column("hourly_rate", Numeric(12, 2), nullable=False, server_default="0"),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    CheckConstraint(
        "type IN ('consultation', 'event_hall', 'virtual')",
        name="rooms_type_check",
    ),
)

room_rentals = Table(
    "room_rentals",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("room_id", Uuid, ForeignKey("rooms.id"), nullable=False),
    Column("doctor_id", Uuid, ForeignKey("doctors.id"), nullable=False),
    Column("appointment_id", Uuid, ForeignKey("appointments.id"), nullable=True),
    Column("start_time", UTCDateTime, nullable=False),
    Column("end_time", UTCDateTime, nullable=False),
    Column("total_price", Numeric(12, 2), nullable=False),
    Column("status", Text, nullable=False, server_default="active"),
    Column("created_at", UTCDateTime, nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('active', 'cancelled')",
        name="room_rentals_status_check",
    ),
    Index("idx_room_rentals_appointment_id", "appointment_id"),
)
