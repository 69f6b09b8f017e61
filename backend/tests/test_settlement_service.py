# Overview: Pytest coverage for sale settlement: validation, costing, splits and persistence.

"""
Sale Settlement Tests

Covers the lifecycle of a sale from cart to committed rows:
- validation rejects the whole cart before anything is touched
- physical lines drain batches, decrement stock and log one Usage record
- services never reach the costing engine
- commission/owner splits reconcile to the line total
- stock bookkeeping is independent of batch coverage
"""

from datetime import datetime
from decimal import Decimal

import pytest

from salonpos.errors import (
    InsufficientStockError,
    ItemNotFoundError,
    MissingEmployeeAssignmentError,
    SettlementStateError,
    SettlementValidationError,
    ValidationError,
)
from salonpos.models import Customer, InventoryBatch, InventoryRecord, Item, Sale, SaleItem, Setting
from salonpos.services import settings_service
from salonpos.services.batch_ledger import BatchLedger, MemoryBatchStore
from salonpos.services.commission_service import assign_employee_service
from salonpos.services.settlement_service import (
    BUILDING,
    COMMITTED,
    REJECTED,
    CartLine,
    SaleSettlement,
    settle_sale,
)


class NeverCostedLedger(BatchLedger):
    def __init__(self):
        super().__init__(MemoryBatchStore())

    def drain(self, *args, **kwargs):
        raise AssertionError("costing engine called for a service line")


class TestEndToEnd:
    def test_shampoo_sale(self, db_session, shampoo, employee):
        result = settle_sale([{"itemId": "shampoo", "employeeId": "e1", "quantity": 2}])

        sale = db_session.get(Sale, result.sale.id)
        line = sale.items[0]
        assert line.total == Decimal("50.00")
        assert line.commission_rate == Decimal("95")
        assert line.commission_amount == Decimal("47.50")
        assert line.owner_amount == Decimal("2.50")
        assert line.cogs_total == Decimal("20.00")

        assert sale.subtotal == Decimal("50.00")
        assert sale.tax == Decimal("5.00")
        assert sale.total == Decimal("55.00")
        assert sale.costing_method == "FIFO"

        item = db_session.get(Item, "shampoo")
        assert item.stock == 48
        assert item.average_cost == Decimal("10.00")

        batch = db_session.query(InventoryBatch).filter_by(item_id="shampoo").one()
        assert batch.remaining_quantity == Decimal("48")

    def test_usage_record_is_logged(self, db_session, shampoo, employee):
        result = settle_sale([CartLine("shampoo", "e1", 2)])

        record = db_session.query(InventoryRecord).filter_by(sale_id=result.sale.id).one()
        assert record.type == "Usage"
        assert record.quantity == -2
        assert record.unit_cost == Decimal("10")
        assert record.total_cost == Decimal("20.00")
        assert record.cogs_total == Decimal("20.00")
        assert record.costing_method == "FIFO"
        assert record.shortfall_quantity is None
        assert len(record.used_batches) == 1
        assert Decimal(record.used_batches[0]["quantity"]) == 2

    def test_sale_serializes_with_customer(self, db_session, shampoo, employee):
        db_session.add(Customer(id="c1", name="Nour Haddad", phone="555-0101"))
        db_session.commit()

        result = settle_sale([CartLine("shampoo", "e1", 1)], customer_id="c1", date="2026-03-01T10:00:00Z")

        payload = db_session.get(Sale, result.sale.id).to_dict()
        assert payload["customer_id"] == "c1"
        assert payload["date"] == "2026-03-01T10:00:00Z"
        assert payload["subtotal"] == "25.00"
        assert payload["tax"] == "2.50"
        assert payload["total"] == "27.50"
        assert payload["items"] == [{
            "item_id": "shampoo",
            "employee_id": "e1",
            "quantity": 1,
            "price": "25.00",
            "total": "25.00",
            "commission_rate": "95.00",
            "commission_amount": "23.75",
            "owner_amount": "1.25",
            "cogs_total": "10.00",
        }]

    def test_mixed_cart_keeps_cart_order(self, db_session, shampoo, haircut, employee, second_employee):
        result = settle_sale([
            {"item_id": "haircut", "employee_id": "e2", "quantity": 1},
            {"item_id": "shampoo", "employee_id": "e1", "quantity": 1},
        ])

        sale = db_session.get(Sale, result.sale.id)
        assert [(line.position, line.item_id) for line in sale.items] == [(1, "haircut"), (2, "shampoo")]
        assert sale.items[0].commission_amount == Decimal("24.50")
        assert sale.items[0].owner_amount == Decimal("10.50")
        assert sale.subtotal == Decimal("60.00")
        assert sale.tax == Decimal("6.00")
        assert sale.total == Decimal("66.00")


class TestServiceExclusion:
    def test_services_are_never_costed(self, db_session, haircut, employee):
        settlement = SaleSettlement(db_session, ledger=NeverCostedLedger())
        settlement.add_line("haircut", "e1", 2)
        result = settlement.settle()

        assert result.inventory_records == []
        assert result.sale.items[0].cogs_total is None
        assert result.sale.items[0].commission_amount == Decimal("49.00")
        assert db_session.query(InventoryRecord).count() == 0


class TestValidation:
    def _rejected(self, db_session, lines, error):
        settlement = SaleSettlement(db_session)
        settlement.add_lines(lines)
        with pytest.raises(error):
            settlement.settle()
        assert settlement.state == REJECTED
        assert isinstance(settlement.error, error)
        return settlement

    def test_insufficient_stock_rejects_without_side_effects(self, db_session, shampoo, employee):
        settlement = self._rejected(db_session, [CartLine("shampoo", "e1", 51)], InsufficientStockError)

        assert settlement.error.details["items"] == [
            {"item_id": "shampoo", "requested_quantity": 51, "stock": 50}
        ]
        db_session.rollback()
        assert db_session.get(Item, "shampoo").stock == 50
        assert db_session.query(InventoryBatch).one().remaining_quantity == Decimal("50")
        assert db_session.query(Sale).count() == 0
        assert db_session.query(InventoryRecord).count() == 0

    def test_stock_is_checked_per_item_across_lines(self, db_session, shampoo, employee):
        self._rejected(
            db_session,
            [CartLine("shampoo", "e1", 30), CartLine("shampoo", "e1", 30)],
            InsufficientStockError,
        )

    def test_unknown_item(self, db_session, employee):
        self._rejected(db_session, [CartLine("conditioner", "e1", 1)], ItemNotFoundError)

    @pytest.mark.parametrize("employee_id", [None, "", "   ", "ghost"])
    def test_every_line_needs_a_known_employee(self, db_session, shampoo, employee, employee_id):
        self._rejected(db_session, [CartLine("shampoo", employee_id, 1)], MissingEmployeeAssignmentError)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
    def test_quantity_must_be_positive_integer(self, db_session, shampoo, employee, quantity):
        self._rejected(db_session, [CartLine("shampoo", "e1", quantity)], SettlementValidationError)

    def test_empty_cart(self, db_session):
        self._rejected(db_session, [], SettlementValidationError)

    @pytest.mark.parametrize("key, value", [("taxRate", "lots"), ("costingMethod", "LIFO")])
    def test_bad_stored_setting_rejects_before_settling(self, db_session, shampoo, employee, key, value):
        db_session.add(Setting(key=key, value=value))
        db_session.commit()

        self._rejected(db_session, [CartLine("shampoo", "e1", 1)], ValidationError)

        db_session.rollback()
        assert db_session.get(Item, "shampoo").stock == 50
        assert db_session.query(Sale).count() == 0

    def test_bad_sale_date_rejects(self, db_session, shampoo, employee):
        settlement = SaleSettlement(db_session, date="not-a-date")
        settlement.add_line("shampoo", "e1", 1)

        with pytest.raises(SettlementValidationError):
            settlement.settle()
        assert settlement.state == REJECTED

    def test_wrapper_rolls_back(self, db_session, shampoo, employee):
        with pytest.raises(MissingEmployeeAssignmentError):
            settle_sale([CartLine("shampoo", "e1", 2), CartLine("shampoo", "", 1)])

        assert db_session.get(Item, "shampoo").stock == 50
        assert db_session.query(Sale).count() == 0


class TestStateMachine:
    def test_lifecycle(self, db_session, shampoo, employee):
        settlement = SaleSettlement(db_session)
        assert settlement.state == BUILDING

        settlement.add_line("shampoo", "e1", 1)
        settlement.settle()
        assert settlement.state == COMMITTED

        with pytest.raises(SettlementStateError):
            settlement.add_line("shampoo", "e1", 1)
        with pytest.raises(SettlementStateError):
            settlement.settle()

    def test_rejected_settlement_cannot_be_retried(self, db_session, shampoo, employee):
        settlement = SaleSettlement(db_session)
        settlement.add_line("shampoo", "e1", 99)
        with pytest.raises(InsufficientStockError):
            settlement.settle()

        with pytest.raises(SettlementStateError):
            settlement.settle()

    def test_settlement_does_not_commit(self, db_session, shampoo, employee):
        settlement = SaleSettlement(db_session)
        settlement.add_line("shampoo", "e1", 2)
        settlement.settle()
        db_session.rollback()

        assert db_session.query(Sale).count() == 0
        assert db_session.get(Item, "shampoo").stock == 50


class TestShortfall:
    @pytest.fixture
    def oversold(self, db_session, shampoo):
        """Stock says 60 but batches only cover 50."""
        shampoo.stock = 60
        db_session.commit()
        return shampoo

    def test_stock_decrements_regardless_of_batches(self, db_session, oversold, employee):
        result = settle_sale([CartLine("shampoo", "e1", 55)])

        assert db_session.get(Item, "shampoo").stock == 5
        assert result.cogs_total == Decimal("500.00")
        record = db_session.query(InventoryRecord).one()
        assert record.shortfall_quantity == Decimal("5")
        assert db_session.query(InventoryBatch).one().remaining_quantity == 0

    def test_item_without_batches_costs_zero(self, db_session, hair_products, make_item, employee):
        make_item("spray", hair_products, price="8.00", stock=3)

        result = settle_sale([CartLine("spray", "e1", 3)])

        assert db_session.get(Item, "spray").stock == 0
        assert result.cogs_total == Decimal("0.00")
        assert db_session.get(Sale, result.sale.id).items[0].cogs_total == Decimal("0.00")

    def test_last_average_cost_policy(self, db_session, oversold, employee):
        settings_service.set_shortfall_costing("LastAverageCost")
        db_session.commit()

        result = settle_sale([CartLine("shampoo", "e1", 55)])

        # 50 covered @ 10 plus 5 uncovered at the last known average of 10
        assert result.cogs_total == Decimal("550.00")
        assert db_session.get(Sale, result.sale.id).items[0].cogs_total == Decimal("550.00")


class TestSettings:
    def test_weighted_average_is_read_at_settlement(self, db_session, shampoo, ledger, employee):
        ledger.add_batch("shampoo", 50, 20, date=datetime(2026, 2, 1))
        shampoo.stock = 100
        settings_service.set_costing_method("WeightedAverage")
        db_session.commit()

        result = settle_sale([CartLine("shampoo", "e1", 10)])

        sale = db_session.get(Sale, result.sale.id)
        assert sale.costing_method == "WeightedAverage"
        assert sale.items[0].cogs_total == Decimal("150.00")
        remaining = [b.remaining_quantity for b in ledger.batches("shampoo")]
        assert remaining == [Decimal("45"), Decimal("45")]

    def test_changing_method_never_recomputes_past_sales(self, db_session, shampoo, ledger, employee):
        ledger.add_batch("shampoo", 50, 20, date=datetime(2026, 2, 1))
        shampoo.stock = 100
        db_session.commit()

        first = settle_sale([CartLine("shampoo", "e1", 10)])
        settings_service.set_costing_method("WeightedAverage")
        db_session.commit()

        sale = db_session.get(Sale, first.sale.id)
        assert sale.costing_method == "FIFO"
        assert sale.items[0].cogs_total == Decimal("100.00")

    def test_tax_rate_setting(self, db_session, shampoo, employee):
        settings_service.set_tax_rate("0.08")
        db_session.commit()

        result = settle_sale([CartLine("shampoo", "e1", 1)])

        sale = db_session.get(Sale, result.sale.id)
        assert sale.tax == Decimal("2.00")
        assert sale.total == Decimal("27.00")
        assert sale.tax_rate == Decimal("0.08")

    def test_employee_override_applies(self, db_session, shampoo, employee):
        assign_employee_service(db_session, "e1", "shampoo", 50)
        db_session.commit()

        result = settle_sale([CartLine("shampoo", "e1", 2)])

        line = db_session.query(SaleItem).filter_by(sale_id=result.sale.id).one()
        assert line.commission_amount == Decimal("25.00")
        assert line.owner_amount == Decimal("25.00")
