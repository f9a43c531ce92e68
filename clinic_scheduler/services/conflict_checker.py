"""Interval conflict checks for doctors and rooms."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import AppointmentStatus

# Appointments in these states no longer occupy their interval
NON_BLOCKING_STATUSES = (
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.NO_SHOW.value,
)


class ResourceKind(str, Enum):
    """Calendars an appointment occupies."""

    DOCTOR = "doctor"
    ROOM = "room"


class ConflictChecker:
    """
    Decides whether a resource is free for a half-open interval.

    Booking calls this inside the same transaction and resource lock that
    performs the insert.
    """

    def __init__(self, db: AsyncSession):
        """Initialize checker with database session."""
        self.db = db

    @staticmethod
    def _resource_column(kind: ResourceKind) -> ColumnElement:
        if kind is ResourceKind.DOCTOR:
            return appointments.c.doctor_id
        return appointments.c.room_id

    def _blocking(
        self,
        kind: ResourceKind,
        resource_id: UUID,
        start: datetime,
        end: datetime,
    ) -> ColumnElement[bool]:
        return and_(
            self._resource_column(kind) == resource_id,
            appointments.c.status.not_in(NON_BLOCKING_STATUSES),
            appointments.c.start_time < end,
            appointments.c.end_time > start,
        )

    async def booked_intervals(
        self,
        kind: ResourceKind,
        resource_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[tuple[datetime, datetime]]:
        """
        List occupied intervals overlapping [start, end).

        Args:
            kind: Doctor or room calendar
            resource_id: Doctor or room ID
            start: Window start
            end: Window end

        Returns:
            (start_time, end_time) pairs ordered by start
        """
        stmt = (
            select(appointments.c.start_time, appointments.c.end_time)
            .where(self._blocking(kind, resource_id, start, end))
            .order_by(appointments.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [(row.start_time, row.end_time) for row in result.fetchall()]

    async def is_available(
        self,
        kind: ResourceKind,
        resource_id: UUID,
        start: datetime,
        end: datetime,
    ) -> bool:
        """Check that no blocking appointment overlaps [start, end)."""
        stmt = select(appointments.c.id).where(self._blocking(kind, resource_id, start, end)).limit(1)
        result = await self.db.execute(stmt)
        return result.first() is None
