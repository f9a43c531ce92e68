"""Weekly settlement of appointments into doctor, clinic and platform shares."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog
from sqlalchemy import and_, exists, insert, or_, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import (
    AppException,
    PolicyViolationException,
    ValidationException,
)
from clinic_scheduler.core.locks import ResourceLocker, appointment_key
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.payments import payments
from clinic_scheduler.models.payouts import payouts
from clinic_scheduler.schemas.appointments import AppointmentStatus
from clinic_scheduler.schemas.payments import PaymentStatus
from clinic_scheduler.schemas.payouts import (
    PayoutBreakdown,
    PayoutResponse,
    PayoutStatus,
    ReviewReason,
    SettlementError,
    SettlementSummary,
    WeeklySettlementResponse,
)
from clinic_scheduler.services.facilities import FacilitiesDirectory
from clinic_scheduler.services.payment_ledger import PaymentLedger
from clinic_scheduler.services.time_window import TimeWindow, previous_week_start

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize an amount to two decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PaymentAmountValidity:
    """
    Decides whether a recorded payment amount can be trusted as the fee.

    An amount is valid when it is positive and, if the doctor has a standard
    fee, at least ``min_ratio`` of that fee. Legacy rows carrying a small
    placeholder amount fail this test and fall back to the doctor's fee.
    """

    min_ratio: Decimal

    def is_valid(self, amount: Decimal | None, doctor_fee: Decimal | None) -> bool:
        """Check a payment amount against the doctor's standard fee."""
        if amount is None or amount <= ZERO:
            return False
        if doctor_fee is None or doctor_fee <= ZERO:
            return True
        return amount >= doctor_fee * self.min_ratio


class PayoutCalculator:
    """Pure fee resolution and three-way split."""

    def __init__(
        self,
        commission_rate: Decimal | None = None,
        validity: PaymentAmountValidity | None = None,
    ):
        """Initialize with commission rate and payment validity policy."""
        self.commission_rate = (
            commission_rate if commission_rate is not None else settings.platform_commission_rate
        )
        self.validity = validity or PaymentAmountValidity(settings.min_valid_payment_ratio)

    def resolve_fee(
        self,
        payment_amount: Decimal | None,
        doctor_fee: Decimal | None,
    ) -> tuple[Decimal, list[ReviewReason]]:
        """
        Pick the consultation fee to settle.

        A valid payment amount wins. Otherwise the doctor's standard fee is
        used and the payout is flagged for review with the reason.

        Raises:
            PolicyViolationException: If neither source yields a fee
        """
        if self.validity.is_valid(payment_amount, doctor_fee):
            return to_money(payment_amount), []

        reason = (
            ReviewReason.PAYMENT_MISSING
            if payment_amount is None
            else ReviewReason.PAYMENT_AMOUNT_INVALID
        )
        if doctor_fee is None or doctor_fee <= ZERO:
            raise PolicyViolationException(
                f"No usable consultation fee ({reason.value}) and no standard fee for the doctor"
            )
        return to_money(doctor_fee), [reason]

    def split(self, consultation_fee: Decimal, room_rental_cost: Decimal) -> PayoutBreakdown:
        """
        Split a fee into doctor payout, clinic revenue and platform commission.

        Commission is rounded half-up to the cent and the doctor payout takes
        the remainder, so the three shares add up to the fee exactly. A payout
        that would go negative is clamped to zero and flagged.
        """
        fee = to_money(consultation_fee)
        rental = to_money(room_rental_cost)
        commission = to_money(fee * self.commission_rate)
        doctor_payout = fee - rental - commission

        reasons = []
        if doctor_payout < ZERO:
            doctor_payout = ZERO
            reasons.append(ReviewReason.NEGATIVE_PAYOUT)

        return PayoutBreakdown(
            consultation_fee=fee,
            room_rental_cost=rental,
            platform_commission=commission,
            doctor_payout=doctor_payout,
            clinic_revenue=rental,
            review_reasons=reasons,
        )

    def settle(
        self,
        payment_amount: Decimal | None,
        doctor_fee: Decimal | None,
        room_rental_cost: Decimal,
    ) -> PayoutBreakdown:
        """Resolve the fee and split it, carrying every review reason."""
        fee, fee_reasons = self.resolve_fee(payment_amount, doctor_fee)
        breakdown = self.split(fee, room_rental_cost)
        breakdown.review_reasons = fee_reasons + breakdown.review_reasons
        return breakdown


class SettlementService:
    """Runs the weekly payout batch."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock,
        calculator: PayoutCalculator | None = None,
        window: TimeWindow | None = None,
        cache_manager: CacheManager | None = None,
    ):
        """Initialize service with database session, clock and calculator."""
        self.db = db
        self.clock = clock
        self.calculator = calculator or PayoutCalculator()
        self.window = window or TimeWindow.from_settings()
        self.facilities = FacilitiesDirectory(db, cache_manager)
        self.ledger = PaymentLedger(db, clock)
        self.locker = ResourceLocker(db)

    def resolve_week(self, week_start: date | None) -> date:
        """
        Validate or default the settlement week.

        Raises:
            ValidationException: If ``week_start`` is not a Monday
        """
        if week_start is None:
            return previous_week_start(self.window.local_date(self.clock.now()))
        if week_start.weekday() != 0:
            raise ValidationException("week_start must be a Monday")
        return week_start

    @staticmethod
    def _paid_exists():
        return exists().where(
            and_(
                payments.c.appointment_id == appointments.c.id,
                payments.c.status == PaymentStatus.PAID.value,
            )
        )

    @staticmethod
    def _live_payout_exists():
        return exists().where(
            and_(
                payouts.c.appointment_id == appointments.c.id,
                payouts.c.status != PayoutStatus.CANCELLED.value,
            )
        )

    def _settleable(self):
        return or_(
            appointments.c.status == AppointmentStatus.COMPLETED.value,
            and_(
                appointments.c.status == AppointmentStatus.CONFIRMED.value,
                self._paid_exists(),
            ),
        )

    async def _candidate_ids(self, start: datetime, end: datetime) -> list[UUID]:
        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    appointments.c.start_time >= start,
                    appointments.c.start_time < end,
                    self._settleable(),
                    ~self._live_payout_exists(),
                )
            )
            .order_by(appointments.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [row.id for row in result.fetchall()]

    async def _reload_if_settleable(self, appointment_id: UUID) -> RowMapping | None:
        """Re-read the appointment under its lock; None if cancelled or already settled meanwhile."""
        stmt = select(appointments).where(
            and_(
                appointments.c.id == appointment_id,
                self._settleable(),
                ~self._live_payout_exists(),
            )
        )
        result = await self.db.execute(stmt)
        return result.mappings().first()

    async def run_weekly_settlement(self, week_start: date | None = None) -> WeeklySettlementResponse:
        """
        Create one pending payout per settleable appointment of the week.

        Appointments qualify when they start within the week and are
        completed, or confirmed with a paid payment, and have no live payout.
        Each appointment is settled in its own transaction under its lock, so
        a failure is reported and the batch moves on, and re-running the week
        skips what is already settled.

        Args:
            week_start: Monday of the week; defaults to last week

        Returns:
            Summary, created payouts and per-appointment errors
        """
        week = self.resolve_week(week_start)
        start, end = self.window.week_bounds(week)
        logger.info("settlement_started", week_start_date=week.isoformat())

        candidate_ids = await self._candidate_ids(start, end)
        summary = SettlementSummary(total_appointments=len(candidate_ids))
        created: list[PayoutResponse] = []
        errors: list[SettlementError] = []

        for appointment_id in candidate_ids:
            try:
                payout = await self._settle_one(appointment_id, week)
            except (AppException, SQLAlchemyError) as e:
                message = e.message if isinstance(e, AppException) else "Database error"
                logger.error(
                    "payout_failed",
                    appointment_id=str(appointment_id),
                    error=e.__class__.__name__,
                    message=message,
                )
                errors.append(
                    SettlementError(
                        appointment_id=appointment_id,
                        error=e.__class__.__name__,
                        message=message,
                    )
                )
                continue

            if payout is None:
                summary.skipped_already_settled += 1
                continue

            created.append(payout)
            summary.payouts_created += 1
            summary.total_consultation_fees += payout.consultation_fee
            summary.total_room_rentals += payout.room_rental_cost
            summary.total_doctor_payouts += payout.doctor_payout
            summary.total_platform_commission += payout.platform_commission
            if payout.requires_review:
                summary.payouts_flagged += 1

        logger.info(
            "settlement_completed",
            week_start_date=week.isoformat(),
            payouts_created=summary.payouts_created,
            errors=len(errors),
        )
        return WeeklySettlementResponse(
            message=f"Payouts processed for week of {week.isoformat()}",
            week_start_date=week,
            summary=summary,
            payouts=created,
            errors=errors,
        )

    async def _settle_one(self, appointment_id: UUID, week: date) -> PayoutResponse | None:
        async with self.locker.hold(appointment_key(appointment_id)):
            try:
                appointment = await self._reload_if_settleable(appointment_id)
                if appointment is None:
                    await self.db.rollback()
                    return None

                doctor = await self.facilities.get_doctor(appointment["doctor_id"])
                doctor_fee = doctor.fee_for(appointment["is_virtual"]) if doctor else None
                payment_amount = await self.ledger.settled_amount(appointment_id)
                rental_cost = await self.facilities.rental_cost(appointment_id)

                breakdown = self.calculator.settle(payment_amount, doctor_fee, rental_cost)

                stmt = (
                    insert(payouts)
                    .values(
                        appointment_id=appointment_id,
                        doctor_id=appointment["doctor_id"],
                        consultation_fee=breakdown.consultation_fee,
                        room_rental_cost=breakdown.room_rental_cost,
                        doctor_payout=breakdown.doctor_payout,
                        clinic_revenue=breakdown.clinic_revenue,
                        platform_commission=breakdown.platform_commission,
                        status=PayoutStatus.PENDING.value,
                        week_start_date=week,
                        requires_review=breakdown.requires_review,
                        review_reason=",".join(r.value for r in breakdown.review_reasons) or None,
                        created_at=self.clock.now(),
                    )
                    .returning(payouts)
                )
                result = await self.db.execute(stmt)
                row = result.mappings().one()
                await self.db.commit()
            except IntegrityError:
                # Another run settled it between our read and insert
                await self.db.rollback()
                return None
            except BaseException:
                await self.db.rollback()
                raise

        payout = PayoutResponse.model_validate(dict(row))
        logger.info(
            "payout_created",
            payout_id=str(payout.id),
            appointment_id=str(appointment_id),
            doctor_payout=str(payout.doctor_payout),
        )
        if payout.requires_review:
            logger.warning(
                "payout_flagged_for_review",
                payout_id=str(payout.id),
                appointment_id=str(appointment_id),
                review_reason=payout.review_reason,
            )
        return payout
