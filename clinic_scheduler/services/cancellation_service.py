"""Cancellation with minimum-notice policy and patient credit."""

from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import PolicyViolationException
from clinic_scheduler.core.locks import ResourceLocker, appointment_key
from clinic_scheduler.models.payouts import payouts
from clinic_scheduler.schemas.appointments import (
    AppointmentStatus,
    CancelResponse,
)
from clinic_scheduler.schemas.auth import Principal
from clinic_scheduler.schemas.payments import CreditInfo, PaymentStatus
from clinic_scheduler.schemas.payouts import PayoutStatus
from clinic_scheduler.services.payment_ledger import PaymentLedger
from clinic_scheduler.services.state_machine import (
    AppointmentStateMachine,
    load_appointment,
)

logger = structlog.get_logger(__name__)


class CancellationService:
    """
    Cancels appointments that still have enough notice left.

    A cancellation exactly ``min_cancellation_hours`` before the start is
    accepted; anything later is rejected without touching the row.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        min_notice: timedelta | None = None,
    ):
        """Initialize service with database session, clock and notice threshold."""
        self.db = db
        self.clock = clock
        self.min_notice = (
            min_notice if min_notice is not None else timedelta(hours=settings.min_cancellation_hours)
        )
        self.state_machine = AppointmentStateMachine(db, clock)
        self.ledger = PaymentLedger(db, clock)
        self.locker = ResourceLocker(db)

    def ensure_notice(self, start_time: datetime) -> None:
        """
        Require at least ``min_notice`` between now and the start.

        Raises:
            PolicyViolationException: If the start is too close
        """
        time_until_start = start_time - self.clock.now()
        if time_until_start < self.min_notice:
            hours = self.min_notice.total_seconds() / 3600
            raise PolicyViolationException(
                f"Appointments can only be cancelled at least {hours:g} hours in advance"
            )

    async def cancel(
        self,
        appointment_id: UUID,
        reason: str | None,
        actor: Principal,
    ) -> CancelResponse:
        """
        Cancel an appointment and credit the patient if it was paid.

        The status change, payout voiding and credit conversion commit
        together. A second cancel hits the terminal-state guard, so credit is
        never issued twice.

        Args:
            appointment_id: Appointment ID
            reason: Free-text reason recorded on the row
            actor: Caller cancelling

        Returns:
            Success flag and credit details

        Raises:
            NotFoundException: If the appointment does not exist
            ForbiddenException: If the caller may not cancel it
            IllegalTransitionException: If it is already completed, cancelled or no-show
            PolicyViolationException: If the notice period has passed
            UpstreamException: If the payment ledger cannot be reached
        """
        async with self.locker.hold(appointment_key(appointment_id)):
            try:
                appointment = await load_appointment(self.db, appointment_id)
                self.state_machine.authorize(actor, appointment, AppointmentStatus.CANCELLED)
                self.state_machine.check(appointment["status"], AppointmentStatus.CANCELLED)
                self.ensure_notice(appointment["start_time"])

                payment_status = await self.ledger.payment_status(appointment_id)

                now = self.clock.now()
                await self.state_machine.transition(
                    appointment,
                    AppointmentStatus.CANCELLED,
                    actor,
                    cancelled_by=actor.id,
                    cancelled_at=now,
                    cancellation_reason=reason,
                )
                await self._void_pending_payouts(appointment_id)

                if payment_status is PaymentStatus.PAID:
                    credit = await self.ledger.issue_credit(appointment_id)
                else:
                    credit = CreditInfo(credit_issued=False, payment_status=payment_status)

                await self.db.commit()
            except BaseException:
                await self.db.rollback()
                raise

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            actor_id=str(actor.id),
            credit_issued=credit.credit_issued,
        )
        return CancelResponse(success=True, credit_info=credit.model_dump(mode="json"))

    async def _void_pending_payouts(self, appointment_id: UUID) -> None:
        """Cancel payouts not yet paid out for this appointment."""
        stmt = (
            update(payouts)
            .where(
                and_(
                    payouts.c.appointment_id == appointment_id,
                    payouts.c.status == PayoutStatus.PENDING.value,
                )
            )
            .values(status=PayoutStatus.CANCELLED.value)
            .returning(payouts.c.id)
        )
        result = await self.db.execute(stmt)
        voided = result.fetchall()
        if voided:
            logger.warning(
                "pending_payouts_voided",
                appointment_id=str(appointment_id),
                payout_ids=[str(row.id) for row in voided],
            )
