"""Appointment lifecycle: legal transitions and who may trigger them."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import (
    ForbiddenException,
    IllegalTransitionException,
    NotFoundException,
)
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.auth import Principal, Role
from clinic_scheduler.schemas.appointments import AppointmentStatus

logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }
)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    # Re-confirming a confirmed appointment is allowed and changes nothing
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# Participants allowed to drive each target status; staff may drive all of them
PATIENT_TARGETS = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED})
DOCTOR_TARGETS = frozenset(
    {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    }
)


def is_patient_of(actor: Principal, appointment: RowMapping) -> bool:
    """Caller is the appointment's patient."""
    return Role.PATIENT in actor.roles and actor.id == appointment["patient_id"]


def is_doctor_of(actor: Principal, appointment: RowMapping) -> bool:
    """Caller is the appointment's doctor."""
    return Role.DOCTOR in actor.roles and actor.id == appointment["doctor_id"]


def can_view(actor: Principal, appointment: RowMapping) -> bool:
    """Participants and staff may read an appointment."""
    return actor.is_staff or is_patient_of(actor, appointment) or is_doctor_of(actor, appointment)


async def load_appointment(db: AsyncSession, appointment_id: UUID) -> RowMapping:
    """
    Fetch an appointment row.

    Raises:
        NotFoundException: If no appointment has this ID
    """
    result = await db.execute(select(appointments).where(appointments.c.id == appointment_id))
    row = result.mappings().first()
    if not row:
        raise NotFoundException("Appointment not found")
    return row


class AppointmentStateMachine:
    """Applies status changes after checking legality and authority."""

    def __init__(self, db: AsyncSession, clock: Clock):
        """Initialize state machine with database session and clock."""
        self.db = db
        self.clock = clock

    @staticmethod
    def check(current: AppointmentStatus | str, target: AppointmentStatus) -> None:
        """
        Reject transitions the lifecycle does not allow.

        Raises:
            IllegalTransitionException: If ``current`` cannot move to ``target``
        """
        current = AppointmentStatus(current)
        if current in TERMINAL_STATUSES:
            raise IllegalTransitionException(
                f"Appointment is already {current.value}; no further changes are allowed"
            )
        if target not in ALLOWED_TRANSITIONS[current]:
            raise IllegalTransitionException(
                f"Cannot move appointment from {current.value} to {target.value}"
            )

    @staticmethod
    def authorize(actor: Principal, appointment: RowMapping, target: AppointmentStatus) -> None:
        """
        Reject callers who may not drive this transition.

        Raises:
            ForbiddenException: If the caller lacks authority
        """
        if actor.is_staff:
            return
        if target in PATIENT_TARGETS and is_patient_of(actor, appointment):
            return
        if target in DOCTOR_TARGETS and is_doctor_of(actor, appointment):
            return
        raise ForbiddenException(f"Not allowed to mark this appointment {target.value}")

    async def transition(
        self,
        appointment: RowMapping,
        target: AppointmentStatus,
        actor: Principal,
        **values: Any,
    ) -> RowMapping:
        """
        Move an appointment to ``target`` and record audit values.

        The update only applies if the row still holds the status that was
        checked, so a concurrent change surfaces as IllegalTransition instead
        of being overwritten. Does not commit.

        Args:
            appointment: Current appointment row
            target: Status to move to
            actor: Caller driving the change
            **values: Extra columns to set (audit fields)

        Returns:
            Updated appointment row
        """
        self.authorize(actor, appointment, target)
        self.check(appointment["status"], target)

        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment["id"],
                    appointments.c.status == appointment["status"],
                )
            )
            .values(status=target.value, updated_at=self.clock.now(), **values)
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise IllegalTransitionException("Appointment status changed concurrently; reload and retry")

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment["id"]),
            old_status=appointment["status"],
            new_status=target.value,
            actor_id=str(actor.id),
        )
        return row
