"""Appointment endpoints."""

import asyncio
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.config import settings
from clinic_scheduler.core.exceptions import AppException
from clinic_scheduler.dependencies import (
    Cache,
    ClockDep,
    CurrentPrincipal,
    DatabaseSession,
    StaffPrincipal,
)
from clinic_scheduler.schemas.appointments import (
    AppointmentCreate,
    AppointmentReference,
    AppointmentResponse,
    AvailabilityResponse,
    CancelRequest,
    CancelResponse,
    ConfirmResponse,
)
from clinic_scheduler.services.appointment_service import AppointmentService
from clinic_scheduler.services.availability_service import AvailabilityService
from clinic_scheduler.services.booking_service import BookingService
from clinic_scheduler.services.cancellation_service import CancellationService

router = APIRouter()


class BookingTimeoutException(AppException):
    """Booking did not finish within the request deadline."""

    def __init__(self, message: str = "Booking request timed out"):
        """Initialize with 504 status code."""
        super().__init__(message, status_code=504)


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List free slots for a doctor",
)
async def get_availability(
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
    cache: Cache,
    doctor_id: UUID = Query(...),
    day: date = Query(..., alias="date", description="Clinic-local calendar date"),
) -> AvailabilityResponse:
    """
    List bookable one-hour slots for a doctor on a date.

    Args:
        current_user: Authenticated caller
        db: Database session
        clock: Wall clock
        cache: Optional directory cache
        doctor_id: Doctor ID
        day: Calendar date in clinic time

    Returns:
        Slot start times in ascending order
    """
    service = AvailabilityService(db, clock, cache_manager=cache)
    slots = await service.get_available_slots(doctor_id, day)
    return AvailabilityResponse(slots=slots)


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
    cache: Cache,
) -> AppointmentResponse:
    """
    Book a pending appointment.

    The request is abandoned and rolled back if it exceeds the booking
    deadline or the client disconnects.

    Args:
        data: Appointment creation data
        current_user: Authenticated caller
        db: Database session
        clock: Wall clock
        cache: Optional directory cache

    Returns:
        Created appointment
    """
    service = BookingService(db, clock, cache_manager=cache)
    try:
        async with asyncio.timeout(settings.booking_timeout_seconds):
            return await service.create_appointment(data, current_user)
    except TimeoutError as e:
        raise BookingTimeoutException() from e


@router.post(
    "/staff",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create confirmed appointment (staff)",
)
async def create_staff_appointment(
    data: AppointmentCreate,
    current_user: StaffPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
    cache: Cache,
) -> AppointmentResponse:
    """
    Book an appointment from the front desk, confirmed without payment.

    Args:
        data: Appointment creation data
        current_user: Authenticated receptionist or administrator
        db: Database session
        clock: Wall clock
        cache: Optional directory cache

    Returns:
        Created appointment
    """
    service = BookingService(db, clock, cache_manager=cache)
    try:
        async with asyncio.timeout(settings.booking_timeout_seconds):
            return await service.create_staff_appointment(data, current_user)
    except TimeoutError as e:
        raise BookingTimeoutException() from e


@router.post(
    "/cancel",
    response_model=CancelResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    data: CancelRequest,
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
) -> CancelResponse:
    """
    Cancel an appointment, crediting the patient if it was paid.

    Args:
        data: Appointment ID and reason
        current_user: Authenticated caller
        db: Database session
        clock: Wall clock

    Returns:
        Success flag and credit details
    """
    service = CancellationService(db, clock)
    return await service.cancel(data.appointment_id, data.reason, current_user)


@router.post(
    "/confirm",
    response_model=ConfirmResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm paid appointment",
)
async def confirm_appointment(
    data: AppointmentReference,
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
) -> ConfirmResponse:
    """
    Confirm an appointment after payment.

    Args:
        data: Appointment ID
        current_user: Authenticated caller
        db: Database session
        clock: Wall clock

    Returns:
        Success flag and the confirmed appointment
    """
    service = AppointmentService(db, clock)
    appointment = await service.confirm_appointment(data.appointment_id, current_user)
    return ConfirmResponse(success=True, appointment=appointment)


@router.post(
    "/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Record completed visit",
)
async def complete_appointment(
    data: AppointmentReference,
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """Record that a confirmed visit took place."""
    service = AppointmentService(db, clock)
    return await service.complete_appointment(data.appointment_id, current_user)


@router.post(
    "/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Record patient no-show",
)
async def mark_no_show(
    data: AppointmentReference,
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """Record that the patient did not attend."""
    service = AppointmentService(db, clock)
    return await service.mark_no_show(data.appointment_id, current_user)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Args:
        appointment_id: Appointment ID
        current_user: Authenticated caller
        db: Database session
        clock: Wall clock

    Returns:
        Appointment details
    """
    service = AppointmentService(db, clock)
    return await service.get_appointment(appointment_id, current_user)
