# Overview: Pytest coverage for sales, commission and stock reports.

from datetime import datetime

import pytest

from salonpos.services.reporting_service import (
    ReportError,
    batch_tracking,
    commission_payouts,
    item_profitability,
    low_stock,
    sales_summary,
    stock_valuation,
)
from salonpos.services.settlement_service import CartLine, settle_sale


@pytest.fixture
def two_sales(db_session, shampoo, haircut, employee, second_employee):
    settle_sale([CartLine("shampoo", "e1", 2)], date="2026-03-01T10:00:00Z")
    settle_sale([CartLine("haircut", "e2", 1)], date="2026-03-02T15:30:00Z")


class TestSales:
    def test_summary(self, two_sales):
        assert sales_summary() == {
            "start": None,
            "end": None,
            "sales_count": 2,
            "subtotal": "85.00",
            "tax": "8.50",
            "total": "93.50",
            "employee_commission": "72.00",
            "salon_owner_revenue": "13.00",
            "cogs": "20.00",
            "gross_profit": "65.00",
        }

    def test_summary_date_range(self, two_sales):
        summary = sales_summary(start="2026-03-02", end="2026-03-03")

        assert summary["start"] == "2026-03-02T00:00:00Z"
        assert summary["sales_count"] == 1
        assert summary["total"] == "38.50"
        assert summary["cogs"] == "0.00"

    def test_empty_range(self, two_sales):
        summary = sales_summary(start="2027-01-01")
        assert summary["sales_count"] == 0
        assert summary["total"] == "0.00"

    @pytest.mark.parametrize("start,end", [("2026-03-05", "2026-03-01"), ("yesterday", None)])
    def test_bad_range(self, db_session, start, end):
        with pytest.raises(ReportError):
            sales_summary(start=start, end=end)

    def test_commission_payouts(self, two_sales):
        payouts = commission_payouts()

        assert [(p["employee_id"], p["commission"], p["salon_owner_revenue"]) for p in payouts] == [
            ("e1", "47.50", "2.50"),
            ("e2", "24.50", "10.50"),
        ]
        assert payouts[0]["lines"] == 1

    def test_item_profitability(self, two_sales):
        report = {row["item_id"]: row for row in item_profitability()}

        assert report["shampoo"]["revenue"] == "50.00"
        assert report["shampoo"]["cogs"] == "20.00"
        assert report["shampoo"]["profit"] == "30.00"
        assert report["shampoo"]["profit_margin_percent"] == "60.00"
        assert report["shampoo"]["average_cost"] == "10.00"
        assert report["haircut"]["cogs"] is None
        assert report["haircut"]["profit_margin_percent"] == "100.00"


class TestStock:
    def test_valuation(self, two_sales):
        valuation = stock_valuation()

        assert valuation["total_value"] == "480.00"
        assert valuation["items"] == [{
            "item_id": "shampoo",
            "name": "Shampoo",
            "stock": 48,
            "batch_quantity": "48.0000",
            "average_cost": "10.00",
            "inventory_value": "480.00",
        }]

    def test_low_stock(self, db_session, hair_products, make_item):
        make_item("spray", hair_products, stock=2)
        make_item("gel", hair_products, stock=9)
        make_item("wax", hair_products, stock=9, reorder_threshold=10)

        assert [row["item_id"] for row in low_stock()] == ["spray", "wax"]
        assert [row["reorder_threshold"] for row in low_stock()] == [5, 10]
        assert [row["item_id"] for row in low_stock(threshold=9)] == ["spray", "gel", "wax"]

    def test_batch_tracking(self, db_session, two_sales, ledger):
        ledger.add_batch("shampoo", 5, 12, date=datetime(2026, 4, 1))
        db_session.commit()

        rows = batch_tracking("shampoo")
        assert [row["status"] for row in rows] == ["Partial", "Open"]
        assert rows[0]["consumed_quantity"] == "2.0000"
        assert rows[0]["remaining_value"] == "480.00"
