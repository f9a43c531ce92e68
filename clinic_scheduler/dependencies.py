"""FastAPI dependencies."""

from collections.abc import Callable, Coroutine
from typing import Annotated, Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.clock import Clock, get_clock
from clinic_scheduler.core.exceptions import ForbiddenException, UnauthorizedException
from clinic_scheduler.core.redis_client import CacheManager, get_cache_manager
from clinic_scheduler.core.security import decode_access_token
from clinic_scheduler.database import get_db
from clinic_scheduler.schemas.auth import (
    SETTLEMENT_ROLES,
    STAFF_ROLES,
    Principal,
    Role,
    TokenPayload,
)

# Security
security = HTTPBearer()


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """
    Resolve the bearer token into the caller's ID and roles.

    Args:
        credentials: Bearer token credentials

    Returns:
        Authenticated principal

    Raises:
        UnauthorizedException: If token is invalid, expired or lacks a subject
    """
    payload = decode_access_token(credentials.credentials)

    if payload is None:
        raise UnauthorizedException("Could not validate credentials")

    try:
        claims = TokenPayload.model_validate(payload)
    except ValidationError as e:
        raise UnauthorizedException("Invalid token claims") from e

    return Principal(id=claims.sub, roles=frozenset(claims.roles))


def require_roles(*roles: Role) -> Callable[..., Coroutine[Any, Any, Principal]]:
    """Build a dependency that admits only callers holding one of ``roles``."""
    allowed = frozenset(roles)

    async def dependency(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if not principal.has_any(allowed):
            raise ForbiddenException("Insufficient role for this operation")
        return principal

    return dependency


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
StaffPrincipal = Annotated[Principal, Depends(require_roles(*STAFF_ROLES))]
AdminPrincipal = Annotated[Principal, Depends(require_roles(*SETTLEMENT_ROLES))]
ClockDep = Annotated[Clock, Depends(get_clock)]
Cache = Annotated[CacheManager | None, Depends(get_cache_manager)]
