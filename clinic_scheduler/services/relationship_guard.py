"""Assigned doctor-patient relationship rule."""

from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import RelationshipException
from clinic_scheduler.core.upstream import upstream_call
from clinic_scheduler.models.doctors import doctor_patients

logger = structlog.get_logger(__name__)


class RelationshipDirectory:
    """Answers whether a patient is assigned to a doctor."""

    def __init__(self, db: AsyncSession):
        """Initialize directory with database session."""
        self.db = db

    async def is_assigned(self, patient_id: UUID, doctor_id: UUID) -> bool:
        """Check for an active assignment between patient and doctor."""
        stmt = (
            select(doctor_patients.c.id)
            .where(
                and_(
                    doctor_patients.c.doctor_id == doctor_id,
                    doctor_patients.c.patient_id == patient_id,
                    doctor_patients.c.status == "active",
                )
            )
            .limit(1)
        )
        async with upstream_call("relationship directory"):
            result = await self.db.execute(stmt)
            return result.first() is not None


class RelationshipGuard:
    """Rejects bookings between unassigned patients and doctors."""

    def __init__(self, directory: RelationshipDirectory):
        """Initialize guard with a relationship directory."""
        self.directory = directory

    async def ensure_can_book(self, patient_id: UUID, doctor_id: UUID) -> None:
        """
        Require an active assignment.

        Raises:
            RelationshipException: If the patient is not assigned to the doctor
            UpstreamException: If the directory cannot answer
        """
        if not await self.directory.is_assigned(patient_id, doctor_id):
            logger.info(
                "booking_relationship_rejected",
                patient_id=str(patient_id),
                doctor_id=str(doctor_id),
            )
            raise RelationshipException("Patients may only book with their assigned doctor")
