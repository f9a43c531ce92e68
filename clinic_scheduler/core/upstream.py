"""Bounded calls to collaborator services."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.config import settings
from clinic_scheduler.core.exceptions import UpstreamException

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def upstream_call(collaborator: str, timeout: float | None = None) -> AsyncIterator[None]:
    """
    Run a collaborator call with a deadline.

    Timeouts and driver errors surface as UpstreamException so callers fail
    closed. Nothing is retried here.

    Args:
        collaborator: Name used in logs and error messages
        timeout: Seconds before giving up, defaults to UPSTREAM_TIMEOUT_SECONDS
    """
    try:
        async with asyncio.timeout(timeout or settings.upstream_timeout_seconds):
            yield
    except TimeoutError as e:
        logger.error("upstream_call_failed", collaborator=collaborator, error="timeout")
        raise UpstreamException(f"{collaborator} did not respond in time") from e
    except SQLAlchemyError as e:
        logger.error("upstream_call_failed", collaborator=collaborator, error=str(e))
        raise UpstreamException(f"{collaborator} is unavailable") from e
