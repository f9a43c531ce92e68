"""Payment status oracle and credit issuance."""

from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.upstream import upstream_call
from clinic_scheduler.models.payments import payments
from clinic_scheduler.schemas.payments import CreditInfo, PaymentStatus

logger = structlog.get_logger(__name__)


class PaymentLedger:
    """Reads payment state for appointments and converts paid amounts into credit."""

    def __init__(self, db: AsyncSession, clock: Clock):
        """Initialize ledger with database session and clock."""
        self.db = db
        self.clock = clock

    async def payment_status(self, appointment_id: UUID) -> PaymentStatus:
        """
        Payment status for an appointment.

        Any paid row wins; otherwise the most recent row decides. No rows
        means the appointment is still awaiting payment.
        """
        stmt = (
            select(payments.c.status)
            .where(payments.c.appointment_id == appointment_id)
            .order_by(payments.c.created_at.desc())
        )
        async with upstream_call("payment ledger"):
            result = await self.db.execute(stmt)
            statuses = [row.status for row in result.fetchall()]

        if not statuses:
            return PaymentStatus.PENDING
        if PaymentStatus.PAID.value in statuses:
            return PaymentStatus.PAID
        return PaymentStatus(statuses[0])

    async def settled_amount(self, appointment_id: UUID) -> Decimal | None:
        """Amount of the latest paid payment, None when nothing was paid."""
        stmt = (
            select(payments.c.amount)
            .where(
                and_(
                    payments.c.appointment_id == appointment_id,
                    payments.c.status == PaymentStatus.PAID.value,
                )
            )
            .order_by(payments.c.paid_at.desc(), payments.c.created_at.desc())
            .limit(1)
        )
        async with upstream_call("payment ledger"):
            result = await self.db.execute(stmt)
            amount = result.scalar()

        return None if amount is None else Decimal(str(amount))

    async def issue_credit(self, appointment_id: UUID) -> CreditInfo:
        """
        Convert the paid amount of an appointment into patient credit.

        Only rows still marked paid are converted, so repeating the call
        issues nothing further. Does not commit.
        """
        stmt = (
            update(payments)
            .where(
                and_(
                    payments.c.appointment_id == appointment_id,
                    payments.c.status == PaymentStatus.PAID.value,
                )
            )
            .values(status=PaymentStatus.CREDIT.value, updated_at=self.clock.now())
            .returning(payments.c.id, payments.c.amount)
        )
        async with upstream_call("payment ledger"):
            result = await self.db.execute(stmt)
            rows = result.fetchall()

        if not rows:
            return CreditInfo(credit_issued=False, payment_status=await self.payment_status(appointment_id))

        amount = sum((Decimal(str(row.amount)) for row in rows), Decimal("0"))
        logger.info(
            "cancellation_credit_issued",
            appointment_id=str(appointment_id),
            amount=str(amount),
        )
        return CreditInfo(
            credit_issued=True,
            payment_status=PaymentStatus.CREDIT,
            amount=amount,
            payment_id=rows[0].id,
        )
