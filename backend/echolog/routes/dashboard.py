"""
EchoLog Backend — Dashboard Route Handlers
============================================

What:  GET /api/dashboard/stats and GET /api/dashboard/history.
"""

import uuid

from fastapi import APIRouter, Depends, Query, Response

from echolog.dependencies import get_current_user_id, get_dashboard_service, get_repository
from echolog.schemas.dashboard import DashboardHistoryResponse, DashboardStatsResponse
from echolog.services.dashboard_service import DashboardService
from echolog.services.repository import EchoLogRepository

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse, summary="Per-user usage statistics")
async def dashboard_stats(
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardStatsResponse:
    return await service.stats(repo, user_id)


@router.get(
    "/history",
    response_model=DashboardHistoryResponse,
    summary="Analyses with their recordings and audio availability",
)
async def dashboard_history(
    response: Response,
    limit: int = Query(default=10, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardHistoryResponse:
    result = await service.history(repo, user_id, limit, skip)
    response.headers["X-Total-Count"] = str(result.total)
    return result
