"""Payment ledger schemas."""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class PaymentStatus(str, Enum):
    """Payment status as reported by the ledger."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CREDIT = "credit"


class CreditInfo(BaseModel):
    """Result of a cancellation credit request."""

    credit_issued: bool
    payment_status: PaymentStatus
    amount: Decimal = Decimal("0")
    payment_id: UUID | None = None
