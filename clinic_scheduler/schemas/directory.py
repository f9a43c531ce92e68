"""Records read from the doctor and facilities directories."""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class RoomType(str, Enum):
    """Room type enumeration."""

    CONSULTATION = "consultation"
    EVENT_HALL = "event_hall"
    VIRTUAL = "virtual"


class DoctorRecord(BaseModel):
    """Doctor fields the scheduling core needs."""

    id: UUID
    full_name: str
    consultation_fee: Decimal | None = None
    consultation_fee_virtual: Decimal | None = None
    is_active: bool = True

    model_config = {"from_attributes": True}

    def fee_for(self, is_virtual: bool) -> Decimal | None:
        """Standard fee for the consult mode, falling back to the in-person fee."""
        if is_virtual and self.consultation_fee_virtual is not None:
            return self.consultation_fee_virtual
        return self.consultation_fee


class RoomRecord(BaseModel):
    """Room fields the scheduling core needs."""

    id: UUID
    name: str
    type: RoomType
    hourly_rate: Decimal
    is_active: bool = True

    model_config = {"from_attributes": True}
