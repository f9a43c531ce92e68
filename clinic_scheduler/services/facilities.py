"""Doctor and room lookups from the facilities directory."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.core.upstream import upstream_call
from clinic_scheduler.models.doctors import doctors
from clinic_scheduler.models.rooms import room_rentals, rooms
from clinic_scheduler.schemas.directory import DoctorRecord, RoomRecord


class FacilitiesDirectory:
    """Read-only access to doctors, rooms and room rentals."""

    # Cache TTL in seconds
    DOCTOR_CACHE_TTL = 900  # 15 minutes
    ROOM_CACHE_TTL = 900

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize directory with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _get_doctor_cache_key(doctor_id: UUID) -> str:
        """Generate cache key for doctor."""
        return f"doctor:{doctor_id}"

    @staticmethod
    def _get_room_cache_key(room_id: UUID) -> str:
        """Generate cache key for room."""
        return f"room:{room_id}"

    async def get_doctor(self, doctor_id: UUID) -> DoctorRecord | None:
        """Get doctor by ID with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_doctor_cache_key(doctor_id))
            if cached:
                return DoctorRecord.model_validate(cached)

        async with upstream_call("doctor directory"):
            result = await self.db.execute(select(doctors).where(doctors.c.id == doctor_id))
            row = result.mappings().first()

        if not row:
            return None

        doctor = DoctorRecord.model_validate(dict(row))
        if self.cache:
            self.cache.set_json(
                self._get_doctor_cache_key(doctor_id),
                doctor.model_dump(mode="json"),
                ttl=self.DOCTOR_CACHE_TTL,
            )
        return doctor

    async def get_room(self, room_id: UUID) -> RoomRecord | None:
        """Get room by ID with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_room_cache_key(room_id))
            if cached:
                return RoomRecord.model_validate(cached)

        async with upstream_call("facilities directory"):
            result = await self.db.execute(select(rooms).where(rooms.c.id == room_id))
            row = result.mappings().first()

        if not row:
            return None

        room = RoomRecord.model_validate(dict(row))
        if self.cache:
            self.cache.set_json(
                self._get_room_cache_key(room_id),
                room.model_dump(mode="json"),
                ttl=self.ROOM_CACHE_TTL,
            )
        return room

    async def rental_cost(self, appointment_id: UUID) -> Decimal:
        """Total price of active room rentals linked to an appointment, 0 if none."""
        stmt = select(func.coalesce(func.sum(room_rentals.c.total_price), 0)).where(
            and_(
                room_rentals.c.appointment_id == appointment_id,
                room_rentals.c.status != "cancelled",
            )
        )
        async with upstream_call("facilities directory"):
            result = await self.db.execute(stmt)
            total = result.scalar()

        return Decimal(str(total or 0))
