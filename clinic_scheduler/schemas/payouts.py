"""Payout and settlement schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PayoutStatus(str, Enum):
    """Payout status enumeration."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReviewReason(str, Enum):
    """Why a payout needs a human look before it is paid."""

    PAYMENT_MISSING = "payment_missing"
    PAYMENT_AMOUNT_INVALID = "payment_amount_invalid"
    NEGATIVE_PAYOUT = "negative_payout"


class PayoutBreakdown(BaseModel):
    """Three-way split of a consultation fee."""

    consultation_fee: Decimal
    room_rental_cost: Decimal
    platform_commission: Decimal
    doctor_payout: Decimal
    clinic_revenue: Decimal
    review_reasons: list[ReviewReason] = Field(default_factory=list)

    @property
    def requires_review(self) -> bool:
        """Whether any review reason was raised."""
        return bool(self.review_reasons)


class PayoutResponse(BaseModel):
    """Schema for payout response."""

    id: UUID
    appointment_id: UUID
    doctor_id: UUID
    consultation_fee: Decimal
    room_rental_cost: Decimal
    doctor_payout: Decimal
    clinic_revenue: Decimal
    platform_commission: Decimal
    status: PayoutStatus
    week_start_date: date
    requires_review: bool
    review_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WeeklySettlementRequest(BaseModel):
    """Body for a settlement run; defaults to last week when omitted."""

    week_start: date | None = None


class SettlementError(BaseModel):
    """Per-appointment failure inside a settlement run."""

    appointment_id: UUID
    error: str
    message: str


class SettlementSummary(BaseModel):
    """Totals for a settlement run."""

    total_appointments: int = 0
    total_consultation_fees: Decimal = Decimal("0")
    total_room_rentals: Decimal = Decimal("0")
    total_doctor_payouts: Decimal = Decimal("0")
    total_platform_commission: Decimal = Decimal("0")
    payouts_created: int = 0
    payouts_flagged: int = 0
    skipped_already_settled: int = 0


class WeeklySettlementResponse(BaseModel):
    """Outcome of a settlement run."""

    success: bool = True
    message: str
    week_start_date: date
    summary: SettlementSummary
    payouts: list[PayoutResponse] = Field(default_factory=list)
    errors: list[SettlementError] = Field(default_factory=list)
