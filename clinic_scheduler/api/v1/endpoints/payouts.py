"""Settlement endpoints."""

from fastapi import APIRouter, status

from clinic_scheduler.dependencies import AdminPrincipal, Cache, ClockDep, DatabaseSession
from clinic_scheduler.schemas.payouts import WeeklySettlementRequest, WeeklySettlementResponse
from clinic_scheduler.services.payout_service import SettlementService

router = APIRouter()


@router.post(
    "/weekly_payout_processor",
    response_model=WeeklySettlementResponse,
    status_code=status.HTTP_200_OK,
    tags=["Payouts"],
    summary="Run weekly settlement",
)
async def run_weekly_payout_processor(
    current_user: AdminPrincipal,
    db: DatabaseSession,
    clock: ClockDep,
    cache: Cache,
    data: WeeklySettlementRequest | None = None,
) -> WeeklySettlementResponse:
    """
    Create pending payouts for every settleable appointment of a week.

    Re-running the same week is safe: appointments that already carry a
    payout are skipped.

    Args:
        current_user: Authenticated administrator
        db: Database session
        clock: Wall clock
        cache: Optional directory cache
        data: Week to settle; defaults to the previous Monday-to-Sunday week

    Returns:
        Settlement summary, created payouts and per-appointment errors
    """
    service = SettlementService(db, clock, cache_manager=cache)
    week_start = data.week_start if data else None
    return await service.run_weekly_settlement(week_start)
