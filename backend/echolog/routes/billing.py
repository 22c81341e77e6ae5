"""
EchoLog Backend — Billing Route Handler
=========================================

What:  GET /api/billing/costs?days=N returns the project's cost report.
How:   Totals for the trailing window and all time, plus a per-service
       breakdown whose integer percentages always sum to 100.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from echolog.config import settings
from echolog.dependencies import get_billing_service, get_current_user_id
from echolog.schemas.billing import BillingReportResponse
from echolog.schemas.common import ErrorResponse
from echolog.services.billing_service import BillingService

router = APIRouter(
    prefix="/api/billing",
    tags=["Billing"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get(
    "/costs",
    response_model=BillingReportResponse,
    responses={500: {"description": "Billing export query failed", "model": ErrorResponse}},
    summary="Project cost report from the billing export",
)
async def billing_costs(
    days: Optional[int] = Query(default=None, ge=1, le=366, description="Trailing window in days"),
    service: BillingService = Depends(get_billing_service),
) -> BillingReportResponse:
    return await service.report(days or settings.billing_window_days)
