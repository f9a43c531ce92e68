"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentCreate(BaseModel):
    """
    Schema for creating a new appointment.

    Presence and cross-field rules are enforced by the booking pipeline in a
    fixed order, so the identifying fields are optional here.
    """

    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    start_time: datetime | None = None
    is_virtual: bool = False
    room_id: UUID | None = None
    notes: str | None = Field(None, max_length=1000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    doctor_id: UUID
    patient_id: UUID
    room_id: UUID | None
    start_time: datetime
    end_time: datetime
    is_virtual: bool
    status: AppointmentStatus
    notes: str | None = None
    created_by: UUID | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    """Bookable slot starts in ascending order."""

    slots: list[datetime]


class AppointmentReference(BaseModel):
    """Body naming a single appointment."""

    appointment_id: UUID


class CancelRequest(AppointmentReference):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class CancelResponse(BaseModel):
    """Outcome of a cancellation."""

    success: bool = True
    credit_info: dict[str, Any] | None = None


class ConfirmResponse(BaseModel):
    """Outcome of a confirmation."""

    success: bool = True
    appointment: AppointmentResponse
