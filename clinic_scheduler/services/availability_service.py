"""Free-slot computation for a doctor's day."""

from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.clock import Clock
from clinic_scheduler.core.exceptions import NotFoundException
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.services.conflict_checker import ConflictChecker, ResourceKind
from clinic_scheduler.services.facilities import FacilitiesDirectory
from clinic_scheduler.services.time_window import TimeWindow, overlaps


class AvailabilityService:
    """Read-only view of bookable slots."""

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
        self.conflicts = ConflictChecker(db)
        self.facilities = FacilitiesDirectory(db, cache_manager)

    async def get_available_slots(self, doctor_id: UUID, day: date) -> list[datetime]:
        """
        Bookable slot starts for a doctor on a clinic-local date.

        Slots at or before the current instant are dropped, as is any slot
        overlapping a pending, confirmed or completed appointment.

        Args:
            doctor_id: Doctor ID
            day: Clinic-local calendar date

        Returns:
            Slot starts in UTC, ascending

        Raises:
            NotFoundException: If the doctor does not exist
        """
        if await self.facilities.get_doctor(doctor_id) is None:
            raise NotFoundException("Doctor not found")

        day_start, day_end = self.window.day_bounds(day)
        booked = await self.conflicts.booked_intervals(
            ResourceKind.DOCTOR, doctor_id, day_start, day_end
        )
        now = self.clock.now()

        slots = []
        for slot_start in self.window.slot_starts(day):
            if slot_start <= now:
                continue
            slot_end = self.window.end_of(slot_start)
            if any(overlaps(slot_start, slot_end, start, end) for start, end in booked):
                continue
            slots.append(slot_start.astimezone(UTC))
        return slots
