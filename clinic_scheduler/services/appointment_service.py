"""Appointment reads and payment-gated lifecycle changes."""

from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import ForbiddenException, PolicyViolationException
from clinic_scheduler.core.locks import ResourceLocker, appointment_key
from clinic_scheduler.schemas.appointments import AppointmentResponse, AppointmentStatus
from clinic_scheduler.schemas.auth import Principal
from clinic_scheduler.schemas.payments import PaymentStatus
from clinic_scheduler.services.payment_ledger import PaymentLedger
from clinic_scheduler.services.state_machine import (
    AppointmentStateMachine,
    can_view,
    load_appointment,
)

logger = structlog.get_logger(__name__)


class AppointmentService:
    """Service for reading appointments and driving confirm/complete/no-show."""

    def __init__(self, db: AsyncSession, clock: Clock):
        """Initialize service with database session and clock."""
        self.db = db
        self.clock = clock
        self.state_machine = AppointmentStateMachine(db, clock)
        self.ledger = PaymentLedger(db, clock)
        self.locker = ResourceLocker(db)

    async def get_appointment(self, appointment_id: UUID, actor: Principal) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the caller is neither a participant nor staff
        """
        appointment = await load_appointment(self.db, appointment_id)
        if not can_view(actor, appointment):
            raise ForbiddenException("Access denied to this appointment")
        return AppointmentResponse.model_validate(dict(appointment))

    async def confirm_appointment(
        self,
        appointment_id: UUID,
        actor: Principal,
    ) -> AppointmentResponse:
        """
        Confirm an appointment once the ledger reports it paid.

        Args:
            appointment_id: Appointment ID
            actor: Caller confirming

        Returns:
            Confirmed appointment

        Raises:
            PolicyViolationException: If payment is not complete, with the
                reported ``payment_status`` attached
            UpstreamException: If the ledger cannot be reached; never confirms
        """

        async def gate(appointment: RowMapping) -> dict[str, Any]:
            payment_status = await self.ledger.payment_status(appointment_id)
            if payment_status is not PaymentStatus.PAID:
                raise PolicyViolationException(
                    "The appointment cannot be confirmed until payment is completed",
                    extra={"payment_status": payment_status.value},
                )
            return {"confirmed_at": appointment["confirmed_at"] or self.clock.now()}

        return await self._apply(appointment_id, AppointmentStatus.CONFIRMED, actor, gate)

    async def complete_appointment(
        self,
        appointment_id: UUID,
        actor: Principal,
    ) -> AppointmentResponse:
        """Record that a confirmed visit took place; only once it has started."""

        async def gate(appointment: RowMapping) -> dict[str, Any]:
            now = self.clock.now()
            if now < appointment["start_time"]:
                raise PolicyViolationException("A visit cannot be completed before it starts")
            return {"completed_at": now}

        return await self._apply(appointment_id, AppointmentStatus.COMPLETED, actor, gate)

    async def mark_no_show(
        self,
        appointment_id: UUID,
        actor: Principal,
    ) -> AppointmentResponse:
        """Record that the patient did not attend; only after the slot has ended."""

        async def gate(appointment: RowMapping) -> dict[str, Any]:
            if self.clock.now() < appointment["end_time"]:
                raise PolicyViolationException(
                    "An appointment can only be marked as no-show after its slot ends"
                )
            return {}

        return await self._apply(appointment_id, AppointmentStatus.NO_SHOW, actor, gate)

    async def _apply(
        self,
        appointment_id: UUID,
        target: AppointmentStatus,
        actor: Principal,
        gate: Callable[[RowMapping], Awaitable[dict[str, Any]]],
    ) -> AppointmentResponse:
        """Run the gate and the transition under the appointment lock."""
        async with self.locker.hold(appointment_key(appointment_id)):
            try:
                appointment = await load_appointment(self.db, appointment_id)
                self.state_machine.authorize(actor, appointment, target)
                self.state_machine.check(appointment["status"], target)
                values = await gate(appointment)
                row = await self.state_machine.transition(appointment, target, actor, **values)
                await self.db.commit()
            except BaseException:
                await self.db.rollback()
                raise

        logger.info(
            f"appointment_{target.value}",
            appointment_id=str(appointment_id),
            actor_id=str(actor.id),
        )
        return AppointmentResponse.model_validate(dict(row))
