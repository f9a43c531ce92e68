"""Authentication schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Roles resolved by the identity provider."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


STAFF_ROLES = frozenset({Role.RECEPTIONIST, Role.ADMIN, Role.SUPER_ADMIN})
SETTLEMENT_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


class Principal(BaseModel):
    """Authenticated caller as resolved from a bearer token."""

    id: UUID
    roles: frozenset[Role] = Field(default_factory=frozenset)

    def has_any(self, roles: frozenset[Role] | set[Role]) -> bool:
        """Check whether the caller holds at least one of the roles."""
        return bool(self.roles & roles)

    @property
    def is_staff(self) -> bool:
        """Receptionists and administrators."""
        return self.has_any(STAFF_ROLES)


class TokenPayload(BaseModel):
    """Claims read from an access token."""

    sub: UUID
    roles: list[Role] = Field(default_factory=list)
