"""
EchoLog Backend — Billing Report Service
==========================================

What:  Builds the project cost report from the Cloud Billing export.
How:   A BillingWarehouse runs two parameterized aggregate queries: per
       (service, SKU) costs over a trailing window, and all-time totals.
       The rows are merged per canonical service and given integer
       percentage shares (see cost_breakdown).
Who:   Called by GET /api/billing/costs.

BigQuery export schema used:
    service.description, sku.description, cost, credits[].amount,
    project.id, usage_start_time
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import bigquery

from echolog.config import settings
from echolog.exceptions import ExternalServiceError
from echolog.schemas.billing import BillingReportResponse, CostTotals, ServiceCostResponse
from echolog.services.cost_breakdown import BillingRow, build_service_breakdown

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")

SERVICE_COSTS_SQL = """
SELECT
  service.description AS service_description,
  sku.description AS sku_description,
  SUM(cost) AS cost,
  SUM(IFNULL((SELECT SUM(c.amount) FROM UNNEST(credits) c), 0)) AS credits
FROM `{table}`
WHERE project.id = @project_id
  AND usage_start_time >= TIMESTAMP_SUB(CURRENT_TIMESTAMP(), INTERVAL @days DAY)
GROUP BY service_description, sku_description
ORDER BY cost DESC
"""

ALL_TIME_TOTALS_SQL = """
SELECT
  IFNULL(SUM(cost), 0) AS cost,
  IFNULL(SUM(IFNULL((SELECT SUM(c.amount) FROM UNNEST(credits) c), 0)), 0) AS credits
FROM `{table}`
WHERE project.id = @project_id
"""


class BillingWarehouse(ABC):
    """Source of aggregated billing rows."""

    @abstractmethod
    async def service_costs(self, days: int) -> List[BillingRow]:
        ...

    @abstractmethod
    async def all_time_totals(self) -> Tuple[float, float]:
        """Returns (cost, credits) over the whole export."""
        ...


class BigQueryBillingWarehouse(BillingWarehouse):
    """Queries the standard Cloud Billing export table in BigQuery."""

    def __init__(
        self,
        table: Optional[str] = None,
        project_id: Optional[str] = None,
        client: Optional[bigquery.Client] = None,
    ):
        self.table = table or settings.billing_export_table
        self.project_id = project_id or settings.google_project_id
        if not self.table or not _TABLE_NAME.match(self.table):
            raise ValueError(f"Invalid billing export table name: '{self.table}'")
        self.client = client or bigquery.Client(project=self.project_id or None)
        logger.info("BigQueryBillingWarehouse using table %s", self.table)

    async def _query(self, sql: str, parameters: list) -> list:
        job_config = bigquery.QueryJobConfig(query_parameters=parameters)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None,
                lambda: list(self.client.query(sql, job_config=job_config).result()),
            )
        except (google_exceptions.GoogleAPIError, google_auth_exceptions.GoogleAuthError) as e:
            logger.error("Billing query failed: %s", str(e))
            raise ExternalServiceError(
                service="BigQuery billing export",
                upstream_message=str(e),
                context={"table": self.table},
            ) from e

    async def service_costs(self, days: int) -> List[BillingRow]:
        rows = await self._query(
            SERVICE_COSTS_SQL.format(table=self.table),
            [
                bigquery.ScalarQueryParameter("project_id", "STRING", self.project_id),
                bigquery.ScalarQueryParameter("days", "INT64", days),
            ],
        )
        return [
            BillingRow(
                service_description=row["service_description"] or "Unknown",
                sku_description=row["sku_description"] or "",
                cost=float(row["cost"] or 0.0),
                credits=float(row["credits"] or 0.0),
            )
            for row in rows
        ]

    async def all_time_totals(self) -> Tuple[float, float]:
        rows = await self._query(
            ALL_TIME_TOTALS_SQL.format(table=self.table),
            [bigquery.ScalarQueryParameter("project_id", "STRING", self.project_id)],
        )
        if not rows:
            return 0.0, 0.0
        return float(rows[0]["cost"] or 0.0), float(rows[0]["credits"] or 0.0)


def _totals(cost: float, credits: float) -> CostTotals:
    return CostTotals(
        total_cost=round(cost, 2),
        total_credits=round(credits, 2),
        net_cost=round(cost + credits, 2),
    )


class BillingService:
    def __init__(
        self,
        warehouse: BillingWarehouse,
        project_id: Optional[str] = None,
        billing_account_id: Optional[str] = None,
    ):
        self.warehouse = warehouse
        self.project_id = project_id if project_id is not None else settings.google_project_id
        self.billing_account_id = (
            billing_account_id if billing_account_id is not None else settings.billing_account_id
        )

    async def report(self, days: int) -> BillingReportResponse:
        rows = await self.warehouse.service_costs(days)
        all_time_cost, all_time_credits = await self.warehouse.all_time_totals()

        period_cost = sum(row.cost for row in rows)
        period_credits = sum(row.credits for row in rows)
        breakdown = build_service_breakdown(rows, total_cost=period_cost)

        logger.info(
            "Billing report: %d rows, %d services, %.2f over %d days",
            len(rows),
            len(breakdown),
            period_cost,
            days,
        )

        return BillingReportResponse(
            project_id=self.project_id,
            billing_account_id=self.billing_account_id,
            days=days,
            period=_totals(period_cost, period_credits),
            all_time=_totals(all_time_cost, all_time_credits),
            service_breakdown=[
                ServiceCostResponse(
                    service=entry.service,
                    cost=entry.cost,
                    credits=entry.credits,
                    net_cost=entry.net_cost,
                    percentage=entry.percentage,
                )
                for entry in breakdown
            ],
        )
