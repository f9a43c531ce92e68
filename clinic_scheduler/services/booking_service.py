"""Validated, serialized creation of appointments."""

from datetime import datetime

import structlog
from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PolicyViolationException,
    ValidationException,
)
from clinic_scheduler.core.locks import ResourceLocker, doctor_key, room_key
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStatus,
)
from clinic_scheduler.schemas.auth import Principal, Role
from clinic_scheduler.schemas.directory import RoomType
from clinic_scheduler.services.conflict_checker import ConflictChecker, ResourceKind
from clinic_scheduler.services.facilities import FacilitiesDirectory
from clinic_scheduler.services.relationship_guard import (
    RelationshipDirectory,
    RelationshipGuard,
)
from clinic_scheduler.services.time_window import TimeWindow

logger = structlog.get_logger(__name__)

# Exclusion constraints backing the conflict check on PostgreSQL
OVERLAP_CONSTRAINTS = {
    "appointments_doctor_no_overlap": ResourceKind.DOCTOR.value,
    "appointments_room_no_overlap": ResourceKind.ROOM.value,
}


def conflicting_resource(error: IntegrityError) -> str:
    """Name the calendar whose overlap constraint rejected an insert, or "storage"."""
    detail = str(error.orig)
    for constraint, resource in OVERLAP_CONSTRAINTS.items():
        if constraint in detail:
            return resource
    return "storage"


class BookingService:
    """
    Creates appointments through a fixed validation pipeline.

    Validation stops at the first failure. The doctor and room conflict checks
    and the insert run while holding the doctor's and room's locks and commit
    before the locks are released, so two requests for the same slot cannot
    both succeed.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        window: TimeWindow | None = None,
        cache_manager: CacheManager | None = None,
    ):
        """Initialize service with database session, clock and slot policy."""
        self.db = db
        self.clock = clock
        self.window = window or TimeWindow.from_settings()
        self.facilities = FacilitiesDirectory(db, cache_manager)
        self.relationships = RelationshipGuard(RelationshipDirectory(db))
        self.conflicts = ConflictChecker(db)
        self.locker = ResourceLocker(db)

    async def create_appointment(
        self,
        data: AppointmentCreate,
        actor: Principal,
    ) -> AppointmentResponse:
        """
        Book an unpaid appointment for a patient.

        Patients may book only for themselves and doctors only on their own
        calendar. The appointment starts ``pending`` until payment confirms it.

        Args:
            data: Booking request
            actor: Authenticated caller

        Returns:
            Created appointment
        """
        return await self._book(data, actor, AppointmentStatus.PENDING, self._authorize_participant)

    async def create_staff_appointment(
        self,
        data: AppointmentCreate,
        actor: Principal,
    ) -> AppointmentResponse:
        """
        Book an appointment on behalf of a patient from the front desk.

        Staff bookings skip the payment gate and start ``confirmed``. Every
        other rule of the pipeline still applies.

        Args:
            data: Booking request
            actor: Authenticated receptionist or administrator

        Returns:
            Created appointment
        """
        return await self._book(data, actor, AppointmentStatus.CONFIRMED, self._authorize_staff)

    @staticmethod
    def _authorize_participant(data: AppointmentCreate, actor: Principal) -> None:
        if actor.is_staff:
            return
        if Role.PATIENT in actor.roles and data.patient_id == actor.id:
            return
        if Role.DOCTOR in actor.roles and data.doctor_id == actor.id:
            return
        raise ForbiddenException("You may only book appointments for yourself")

    @staticmethod
    def _authorize_staff(data: AppointmentCreate, actor: Principal) -> None:
        if not actor.is_staff:
            raise ForbiddenException("Only clinic staff may create pre-confirmed appointments")

    def _validate_request(self, data: AppointmentCreate) -> datetime:
        """Steps that need nothing but the request and the clock; returns the local start."""
        missing = [
            name
            for name in ("doctor_id", "patient_id", "start_time")
            if getattr(data, name) is None
        ]
        if missing:
            raise ValidationException(f"Missing required fields: {', '.join(missing)}")

        if not data.is_virtual and data.room_id is None:
            raise ValidationException("In-person appointments require a room")
        if data.is_virtual and data.room_id is not None:
            raise ValidationException("Virtual appointments cannot reserve a room")

        start = self.window.localize(data.start_time)
        if not self.window.within_working_hours(start):
            raise PolicyViolationException(
                f"Outside working hours ({self.window.start_hour:02d}:00-{self.window.end_hour:02d}:00)"
            )

        if start <= self.clock.now():
            raise PolicyViolationException("Appointments cannot be booked in the past")

        return start

    async def _resolve_resources(self, data: AppointmentCreate) -> None:
        doctor = await self.facilities.get_doctor(data.doctor_id)
        if doctor is None:
            raise NotFoundException("Doctor not found")
        if not doctor.is_active:
            raise PolicyViolationException("Doctor is not accepting appointments")

        if data.is_virtual:
            return

        room = await self.facilities.get_room(data.room_id)
        if room is None:
            raise NotFoundException("Room not found")
        if room.type is RoomType.VIRTUAL:
            raise ValidationException("Virtual rooms cannot host in-person appointments")
        if not room.is_active:
            raise PolicyViolationException("Room is not available for booking")

    async def _book(
        self,
        data: AppointmentCreate,
        actor: Principal,
        initial_status: AppointmentStatus,
        authorize,
    ) -> AppointmentResponse:
        start = self._validate_request(data)
        authorize(data, actor)
        await self._resolve_resources(data)
        await self.relationships.ensure_can_book(data.patient_id, data.doctor_id)

        end = self.window.end_of(start)
        keys = [doctor_key(data.doctor_id)]
        if not data.is_virtual:
            keys.append(room_key(data.room_id))

        async with self.locker.hold(*keys):
            try:
                if not await self.conflicts.is_available(
                    ResourceKind.DOCTOR, data.doctor_id, start, end
                ):
                    self._log_conflict(data, ResourceKind.DOCTOR.value, start)
                    raise ConflictException("The doctor is not available at the selected time")

                if not data.is_virtual and not await self.conflicts.is_available(
                    ResourceKind.ROOM, data.room_id, start, end
                ):
                    self._log_conflict(data, ResourceKind.ROOM.value, start)
                    raise ConflictException("The room is not available at the selected time")

                now = self.clock.now()
                values = {
                    "doctor_id": data.doctor_id,
                    "patient_id": data.patient_id,
                    "room_id": None if data.is_virtual else data.room_id,
                    "start_time": start,
                    "end_time": end,
                    "is_virtual": data.is_virtual,
                    "status": initial_status.value,
                    "notes": data.notes,
                    "created_by": actor.id,
                    "confirmed_at": now if initial_status is AppointmentStatus.CONFIRMED else None,
                    "created_at": now,
                    "updated_at": now,
                }
                stmt = insert(appointments).values(**values).returning(appointments)
                result = await self.db.execute(stmt)
                row = result.mappings().one()
                await self.db.commit()
            except IntegrityError as e:
                # Storage-level overlap constraint caught a booking outside this process
                await self.db.rollback()
                self._log_conflict(data, conflicting_resource(e), start)
                raise ConflictException("The selected time is no longer available") from e
            except BaseException:
                await self.db.rollback()
                raise

        logger.info(
            "appointment_created",
            appointment_id=str(row["id"]),
            doctor_id=str(data.doctor_id),
            patient_id=str(data.patient_id),
            room_id=str(data.room_id) if data.room_id else None,
            start_time=start.isoformat(),
            status=initial_status.value,
        )
        return AppointmentResponse.model_validate(dict(row))

    @staticmethod
    def _log_conflict(data: AppointmentCreate, resource: str, start: datetime) -> None:
        logger.info(
            "appointment_conflict",
            resource=resource,
            doctor_id=str(data.doctor_id),
            room_id=str(data.room_id) if data.room_id else None,
            start_time=start.isoformat(),
        )
