"""Tests for the appointment booking pipeline."""

import asyncio
from datetime import UTC, timedelta
from uuid import uuid4

import pytest
from conftest import doctor_principal, local
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from clinic_scheduler.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PolicyViolationException,
    RelationshipException,
    ValidationException,
)
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import AppointmentCreate, AppointmentStatus
from clinic_scheduler.services.booking_service import BookingService, conflicting_resource
from clinic_scheduler.services.conflict_checker import ConflictChecker


@pytest.fixture
async def booking_setup(make_doctor, make_room, assign, patient_id):
    doctor_id = await make_doctor()
    room_id = await make_room()
    await assign(doctor_id, patient_id)
    return doctor_id, room_id


def request(doctor_id, patient_id, room_id=None, **overrides) -> AppointmentCreate:
    data = {
        "doctor_id": doctor_id,
        "patient_id": patient_id,
        "start_time": local(2025, 6, 2, 10),
        "is_virtual": room_id is None,
        "room_id": room_id,
    }
    data.update(overrides)
    return AppointmentCreate(**data)


async def count_appointments(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(appointments))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_create_in_person_appointment(db_session, clock, booking_setup, patient, patient_id):
    doctor_id, room_id = booking_setup

    appointment = await BookingService(db_session, clock).create_appointment(
        request(doctor_id, patient_id, room_id), patient
    )

    assert appointment.status is AppointmentStatus.PENDING
    assert appointment.room_id == room_id
    assert appointment.start_time == local(2025, 6, 2, 10).astimezone(UTC)
    assert appointment.end_time - appointment.start_time == timedelta(hours=1)
    assert appointment.created_by == patient_id
    assert appointment.confirmed_at is None


@pytest.mark.asyncio
async def test_create_virtual_appointment(db_session, clock, booking_setup, patient, patient_id):
    doctor_id, _ = booking_setup

    appointment = await BookingService(db_session, clock).create_appointment(
        request(doctor_id, patient_id), patient
    )

    assert appointment.is_virtual
    assert appointment.room_id is None


@pytest.mark.asyncio
async def test_in_person_without_room_is_rejected(
    db_session, clock, booking_setup, patient, patient_id
):
    doctor_id, _ = booking_setup
    data = request(doctor_id, patient_id, is_virtual=False)

    with pytest.raises(ValidationException, match="require a room"):
        await BookingService(db_session, clock).create_appointment(data, patient)

    assert await count_appointments(db_session) == 0


@pytest.mark.asyncio
async def test_virtual_with_room_is_rejected(
    db_session, clock, booking_setup, patient, patient_id
):
    doctor_id, room_id = booking_setup
    data = request(doctor_id, patient_id, room_id, is_virtual=True)

    with pytest.raises(ValidationException):
        await BookingService(db_session, clock).create_appointment(data, patient)


@pytest.mark.asyncio
async def test_missing_fields_are_rejected(db_session, clock, patient):
    with pytest.raises(ValidationException, match="doctor_id"):
        await BookingService(db_session, clock).create_appointment(
            AppointmentCreate(patient_id=patient.id, is_virtual=True), patient
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("hour", [6, 21, 23])
async def test_outside_working_hours(db_session, clock, booking_setup, patient, patient_id, hour):
    doctor_id, room_id = booking_setup
    data = request(doctor_id, patient_id, room_id, start_time=local(2025, 6, 2, hour))

    with pytest.raises(PolicyViolationException, match="working hours"):
        await BookingService(db_session, clock).create_appointment(data, patient)


@pytest.mark.asyncio
async def test_past_start_is_rejected(db_session, clock, booking_setup, patient, patient_id):
    doctor_id, room_id = booking_setup
    clock.set(local(2025, 6, 2, 10, 30))
    data = request(doctor_id, patient_id, room_id)

    with pytest.raises(PolicyViolationException, match="past"):
        await BookingService(db_session, clock).create_appointment(data, patient)


@pytest.mark.asyncio
async def test_unassigned_patient_is_rejected(db_session, clock, make_doctor, patient, patient_id):
    doctor_id = await make_doctor()

    with pytest.raises(RelationshipException) as exc_info:
        await BookingService(db_session, clock).create_appointment(
            request(doctor_id, patient_id), patient
        )

    assert exc_info.value.status_code == 403
    assert isinstance(exc_info.value, PolicyViolationException)


@pytest.mark.asyncio
async def test_inactive_relationship_is_rejected(
    db_session, clock, make_doctor, assign, patient, patient_id
):
    doctor_id = await make_doctor()
    await assign(doctor_id, patient_id, status="inactive")

    with pytest.raises(RelationshipException):
        await BookingService(db_session, clock).create_appointment(
            request(doctor_id, patient_id), patient
        )


@pytest.mark.asyncio
async def test_unknown_room(db_session, clock, booking_setup, patient, patient_id):
    doctor_id, _ = booking_setup

    with pytest.raises(NotFoundException, match="Room"):
        await BookingService(db_session, clock).create_appointment(
            request(doctor_id, patient_id, uuid4()), patient
        )


@pytest.mark.asyncio
async def test_virtual_room_cannot_host_in_person(
    db_session, clock, booking_setup, make_room, patient, patient_id
):
    doctor_id, _ = booking_setup
    virtual_room = await make_room(room_type="virtual", name="Sala virtual")

    with pytest.raises(ValidationException):
        await BookingService(db_session, clock).create_appointment(
            request(doctor_id, patient_id, virtual_room), patient
        )


@pytest.mark.asyncio
async def test_inactive_doctor(db_session, clock, make_doctor, assign, patient, patient_id):
    doctor_id = await make_doctor(is_active=False)
    await assign(doctor_id, patient_id)

    with pytest.raises(PolicyViolationException):
        await BookingService(db_session, clock).create_appointment(
            request(doctor_id, patient_id), patient
        )


@pytest.mark.asyncio
async def test_patient_cannot_book_for_someone_else(db_session, clock, booking_setup, patient):
    doctor_id, _ = booking_setup

    with pytest.raises(ForbiddenException):
        await BookingService(db_session, clock).create_appointment(
            request(doctor_id, uuid4()), patient
        )


@pytest.mark.asyncio
async def test_doctor_books_on_own_calendar(db_session, clock, booking_setup, patient_id):
    doctor_id, room_id = booking_setup

    appointment = await BookingService(db_session, clock).create_appointment(
        request(doctor_id, patient_id, room_id), doctor_principal(doctor_id)
    )

    assert appointment.doctor_id == doctor_id


@pytest.mark.asyncio
async def test_doctor_conflict(db_session, clock, booking_setup, make_room, patient, patient_id):
    doctor_id, room_id = booking_setup
    other_room = await make_room(name="Consultorio 2")
    service = BookingService(db_session, clock)
    await service.create_appointment(request(doctor_id, patient_id, room_id), patient)

    with pytest.raises(ConflictException, match="doctor"):
        await service.create_appointment(request(doctor_id, patient_id, other_room), patient)


@pytest.mark.asyncio
async def test_room_conflict(
    db_session, clock, booking_setup, make_doctor, assign, patient, patient_id
):
    doctor_id, room_id = booking_setup
    other_doctor = await make_doctor(full_name="Dr. Luis Pérez")
    await assign(other_doctor, patient_id)
    service = BookingService(db_session, clock)
    await service.create_appointment(request(doctor_id, patient_id, room_id), patient)

    with pytest.raises(ConflictException, match="room"):
        await service.create_appointment(request(other_doctor, patient_id, room_id), patient)


@pytest.mark.asyncio
async def test_adjacent_slots_do_not_conflict(
    db_session, clock, booking_setup, patient, patient_id
):
    doctor_id, room_id = booking_setup
    service = BookingService(db_session, clock)

    await service.create_appointment(request(doctor_id, patient_id, room_id), patient)
    await service.create_appointment(
        request(doctor_id, patient_id, room_id, start_time=local(2025, 6, 2, 11)), patient
    )

    assert await count_appointments(db_session) == 2


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_rebooked(
    db_session, clock, booking_setup, insert_appointment, patient, patient_id
):
    doctor_id, room_id = booking_setup
    await insert_appointment(
        doctor_id, uuid4(), local(2025, 6, 2, 10), status="cancelled", room_id=room_id
    )

    appointment = await BookingService(db_session, clock).create_appointment(
        request(doctor_id, patient_id, room_id), patient
    )

    assert appointment.status is AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_bookings_for_same_slot(
    session_factory, clock, booking_setup, patient, patient_id
):
    doctor_id, room_id = booking_setup
    attempts = 8

    async def attempt():
        async with session_factory() as session:
            return await BookingService(session, clock).create_appointment(
                request(doctor_id, patient_id, room_id), patient
            )

    results = await asyncio.gather(*(attempt() for _ in range(attempts)), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, ConflictException)]
    assert len(successes) == 1
    assert len(conflicts) == attempts - 1

    async with session_factory() as session:
        assert await count_appointments(session) == 1


@pytest.mark.asyncio
async def test_concurrent_bookings_for_same_room(
    session_factory, clock, make_doctor, make_room, assign, patient, patient_id
):
    room_id = await make_room()
    doctor_ids = []
    for n in range(6):
        doctor_id = await make_doctor(full_name=f"Doctor {n}")
        await assign(doctor_id, patient_id)
        doctor_ids.append(doctor_id)

    async def attempt(doctor_id):
        async with session_factory() as session:
            return await BookingService(session, clock).create_appointment(
                request(doctor_id, patient_id, room_id), patient
            )

    results = await asyncio.gather(*(attempt(d) for d in doctor_ids), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, ConflictException)]
    assert len(successes) == 1
    assert len(conflicts) == len(doctor_ids) - 1

    async with session_factory() as session:
        assert await count_appointments(session) == 1


@pytest.mark.asyncio
async def test_staff_booking_starts_confirmed(
    db_session, clock, booking_setup, receptionist, patient_id
):
    doctor_id, room_id = booking_setup

    appointment = await BookingService(db_session, clock).create_staff_appointment(
        request(doctor_id, patient_id, room_id), receptionist
    )

    assert appointment.status is AppointmentStatus.CONFIRMED
    assert appointment.confirmed_at == clock.now()
    assert appointment.created_by == receptionist.id


@pytest.mark.asyncio
async def test_staff_booking_still_requires_relationship(
    db_session, clock, make_doctor, receptionist, patient_id
):
    doctor_id = await make_doctor()

    with pytest.raises(RelationshipException):
        await BookingService(db_session, clock).create_staff_appointment(
            request(doctor_id, patient_id), receptionist
        )


@pytest.mark.asyncio
async def test_patient_cannot_use_staff_booking(db_session, clock, booking_setup, patient):
    doctor_id, _ = booking_setup

    with pytest.raises(ForbiddenException):
        await BookingService(db_session, clock).create_staff_appointment(
            request(doctor_id, patient.id), patient
        )


@pytest.mark.asyncio
async def test_abandoned_booking_is_rolled_back(
    db_session, clock, booking_setup, patient, patient_id, monkeypatch
):
    doctor_id, room_id = booking_setup
    service = BookingService(db_session, clock)
    is_available = ConflictChecker.is_available

    async def slow_is_available(self, *args, **kwargs):
        await asyncio.sleep(1)
        return await is_available(self, *args, **kwargs)

    monkeypatch.setattr(ConflictChecker, "is_available", slow_is_available)

    with pytest.raises(TimeoutError):
        await asyncio.wait_for(
            service.create_appointment(request(doctor_id, patient_id, room_id), patient),
            timeout=0.05,
        )

    assert not db_session.in_transaction()

    monkeypatch.undo()
    appointment = await service.create_appointment(
        request(doctor_id, patient_id, room_id), patient
    )
    assert appointment.status is AppointmentStatus.PENDING


def overlap_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT INTO appointments", {}, Exception(message))


def test_storage_conflict_names_the_calendar():
    room = overlap_error(
        'conflicting key value violates exclusion constraint "appointments_room_no_overlap"'
    )
    doctor = overlap_error(
        'conflicting key value violates exclusion constraint "appointments_doctor_no_overlap"'
    )

    assert conflicting_resource(room) == "room"
    assert conflicting_resource(doctor) == "doctor"
    assert conflicting_resource(overlap_error("UNIQUE constraint failed")) == "storage"
