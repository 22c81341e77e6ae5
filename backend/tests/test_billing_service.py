"""
EchoLog Backend — Billing Service Tests
=========================================

What we test:
    ✅ Report totals, per-service merge and percentages from warehouse rows
    ✅ Zero-cost periods report no percentages
    ✅ BigQuery query parameters and error translation (mocked client)
    ✅ Export table names are validated before they reach SQL
"""

from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from echolog.exceptions import ExternalServiceError
from echolog.services.billing_service import (
    BigQueryBillingWarehouse,
    BillingService,
    BillingWarehouse,
)
from echolog.services.cost_breakdown import BillingRow


class FakeWarehouse(BillingWarehouse):
    def __init__(self, rows, totals=(0.0, 0.0)):
        self.rows = rows
        self.totals = totals
        self.requested_days = []

    async def service_costs(self, days):
        self.requested_days.append(days)
        return self.rows

    async def all_time_totals(self):
        return self.totals


class TestBillingService:
    @pytest.mark.asyncio
    async def test_report(self):
        warehouse = FakeWarehouse(
            rows=[
                BillingRow("Cloud Speech API", "Recognition", 14.0, -2.0),
                BillingRow("Generative Language API", "Tokens", 4.0, 0.0),
                BillingRow("Cloud Storage", "Standard", 1.5, 0.0),
                BillingRow("Cloud Storage", "Egress", 0.5, 0.0),
            ],
            totals=(120.5, -10.25),
        )
        service = BillingService(warehouse, project_id="echolog-prod", billing_account_id="0000-AAAA")

        report = await service.report(days=30)

        assert warehouse.requested_days == [30]
        assert report.project_id == "echolog-prod"
        assert report.days == 30
        assert report.period.total_cost == 20.0
        assert report.period.total_credits == -2.0
        assert report.period.net_cost == 18.0
        assert report.all_time.total_cost == 120.5
        assert report.all_time.net_cost == 110.25

        services = [(s.service, s.cost, s.percentage) for s in report.service_breakdown]
        assert services == [
            ("Speech-to-Text", 14.0, 70),
            ("Gemini API", 4.0, 20),
            ("Cloud Storage", 2.0, 10),
        ]
        assert report.service_breakdown[0].net_cost == 12.0
        assert sum(s.percentage for s in report.service_breakdown) == 100

    @pytest.mark.asyncio
    async def test_free_period_has_no_percentages(self):
        warehouse = FakeWarehouse(rows=[BillingRow("Cloud Storage", "Standard", 0.0, 0.0)])

        report = await BillingService(warehouse, project_id="p", billing_account_id="b").report(7)

        assert report.service_breakdown[0].percentage is None
        assert report.period.total_cost == 0.0

    @pytest.mark.asyncio
    async def test_empty_export(self):
        report = await BillingService(FakeWarehouse(rows=[]), project_id="p", billing_account_id="b").report(7)
        assert report.service_breakdown == []


class TestBigQueryBillingWarehouse:
    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def warehouse(self, client):
        return BigQueryBillingWarehouse(
            table="billing.gcp_billing_export_v1_0000", project_id="echolog-prod", client=client
        )

    @pytest.mark.asyncio
    async def test_service_costs(self, warehouse, client):
        client.query.return_value.result.return_value = [
            {"service_description": "Cloud Speech API", "sku_description": "Recognition",
             "cost": 3.5, "credits": -0.5},
            {"service_description": None, "sku_description": None, "cost": None, "credits": None},
        ]

        rows = await warehouse.service_costs(days=14)

        assert rows == [
            BillingRow("Cloud Speech API", "Recognition", 3.5, -0.5),
            BillingRow("Unknown", "", 0.0, 0.0),
        ]
        sql = client.query.call_args.args[0]
        assert "`billing.gcp_billing_export_v1_0000`" in sql
        params = client.query.call_args.kwargs["job_config"].query_parameters
        assert {(p.name, p.value) for p in params} == {("project_id", "echolog-prod"), ("days", 14)}

    @pytest.mark.asyncio
    async def test_all_time_totals(self, warehouse, client):
        client.query.return_value.result.return_value = [{"cost": 99.9, "credits": -9.9}]
        assert await warehouse.all_time_totals() == (99.9, -9.9)

    @pytest.mark.asyncio
    async def test_query_failure(self, warehouse, client):
        client.query.side_effect = google_exceptions.Forbidden("billing export not shared")

        with pytest.raises(ExternalServiceError) as exc_info:
            await warehouse.service_costs(days=30)
        assert "billing export not shared" in exc_info.value.details

    @pytest.mark.parametrize("table", ["", "billing.export`; DROP TABLE x; --", "a b"])
    def test_invalid_table_name(self, table):
        with pytest.raises(ValueError):
            BigQueryBillingWarehouse(table=table or None, project_id="p", client=MagicMock())
