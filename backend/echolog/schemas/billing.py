"""
EchoLog Backend — Billing Report Schemas
==========================================
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ServiceCostResponse(BaseModel):
    service: str
    cost: float
    credits: float
    net_cost: float
    percentage: Optional[int] = Field(
        default=None, description="Integer share of total cost; null when total is 0"
    )


class CostTotals(BaseModel):
    total_cost: float
    total_credits: float
    net_cost: float


class BillingReportResponse(BaseModel):
    project_id: str
    billing_account_id: str
    days: int
    period: CostTotals
    all_time: CostTotals
    service_breakdown: List[ServiceCostResponse]
