# Overview: Sale settlement; turns a validated cart into a sale, stock decrements, COGS and commission splits.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..errors import (
    InsufficientBatchStockError,
    InsufficientStockError,
    ItemNotFoundError,
    MissingEmployeeAssignmentError,
    SettlementStateError,
    SettlementValidationError,
    ValidationError,
)
from ..models import Employee, InventoryBatch, InventoryRecord, Item, Sale, SaleItem
from ..models.base import generate_id
from ..money import ZERO, round2, round_quantity, to_decimal
from ..time_utils import normalize_datetime
from . import settings_service
from .batch_ledger import BatchLedger, SqlBatchStore
from .commission_service import resolve_commission_rate, split
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .costing import CostResult, get_policy
"""
Settlement lifecycle (authoritative)

BUILDING -> VALIDATING -> SETTLING -> COMMITTED
                |
                +-> REJECTED

- BUILDING collects cart lines and has no side effects.
- VALIDATING checks every line and reads the costing, tax and shortfall
  settings before anything is touched. Any failure rejects the whole sale;
  nothing has been mutated.
- SETTLING processes lines in cart order: physical items drain the batch
  ledger, decrement Item.stock and log a Usage record; every line gets its
  commission/owner split.
- The orchestrator never commits. Rows are added to the injected session
  and flushed; the caller wraps settlement and commit in one transaction and
  rolls back the lot on failure.

Stock and cost bookkeeping are independent: Item.stock always decreases by
the sold quantity. When batches cannot cover the sale the uncovered units
are costed by the shortfall policy (zero by default) and checkout proceeds.
"""

logger = logging.getLogger(__name__)

BUILDING = "BUILDING"
VALIDATING = "VALIDATING"
SETTLING = "SETTLING"
COMMITTED = "COMMITTED"
REJECTED = "REJECTED"


@dataclass
class CartLine:
    item_id: str
    employee_id: str | None
    quantity: int

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            item_id=data.get("item_id", data.get("itemId")),
            employee_id=data.get("employee_id", data.get("employeeId")),
            quantity=data.get("quantity"),
        )


@dataclass
class SettlementResult:
    sale: Sale
    inventory_records: list[InventoryRecord] = field(default_factory=list)
    batches: list[InventoryBatch] = field(default_factory=list)
    items: list[Item] = field(default_factory=list)

    @property
    def cogs_total(self) -> Decimal:
        return round2(sum((to_decimal(r.cogs_total) for r in self.inventory_records), ZERO))


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class SaleSettlement:
    """
    Settles one sale against an injected session.

    costing_method, tax_rate and shortfall_costing default to the current
    settings, read while the cart is validated.
    """

    def __init__(
        self,
        session,
        *,
        ledger: BatchLedger | None = None,
        costing_method: str | None = None,
        tax_rate=None,
        shortfall_costing: str | None = None,
        customer_id: str | None = None,
        date: datetime | str | None = None,
    ):
        self.session = session
        self.ledger = ledger or BatchLedger(SqlBatchStore(session))
        self.costing_method = costing_method
        self.tax_rate = tax_rate
        self.shortfall_costing = shortfall_costing
        self.customer_id = customer_id
        self.date = date
        self.lines: list[CartLine] = []
        self.state = BUILDING
        self.error: ValidationError | None = None
        self._method: str | None = None
        self._tax_rate: Decimal | None = None
        self._shortfall_costing: str | None = None
        self._sale_date: datetime | None = None

    def add_line(self, item_id: str, employee_id: str | None, quantity) -> CartLine:
        if self.state != BUILDING:
            raise SettlementStateError(f"Cannot add lines to a {self.state} settlement")
        line = CartLine(item_id=item_id, employee_id=employee_id, quantity=quantity)
        self.lines.append(line)
        return line

    def add_lines(self, lines) -> None:
        for line in lines:
            if isinstance(line, dict):
                line = CartLine.from_dict(line)
            self.add_line(line.item_id, line.employee_id, line.quantity)

    # ------------------------------------------------------------------
    # Validating
    # ------------------------------------------------------------------

    def validate(self) -> dict[str, Item]:
        """Check the whole cart and settings; returns the items by id. Rejects on failure."""
        if self.state != BUILDING:
            raise SettlementStateError(f"Cannot validate a {self.state} settlement")
        self.state = VALIDATING
        try:
            items = self._validate_lines()
            self._snapshot_context()
        except ValidationError as exc:
            self.state = REJECTED
            self.error = exc
            logger.warning("Sale rejected: %s %s", exc.message, exc.details)
            raise
        return items

    def _snapshot_context(self) -> None:
        try:
            self._sale_date = normalize_datetime(self.date)
        except ValueError:
            raise SettlementValidationError("Invalid sale date", details={"date": repr(self.date)})
        self._method = get_policy(self.costing_method or settings_service.get_costing_method(self.session)).name
        self._tax_rate = to_decimal(
            self.tax_rate if self.tax_rate is not None else settings_service.get_tax_rate(self.session)
        )
        self._shortfall_costing = self.shortfall_costing or settings_service.get_shortfall_costing(self.session)

    def _validate_lines(self) -> dict[str, Item]:
        if not self.lines:
            raise SettlementValidationError("Cannot settle a sale with no lines")

        items: dict[str, Item] = {}
        for index, line in enumerate(self.lines, start=1):
            if not _is_positive_int(line.quantity):
                raise SettlementValidationError(
                    "Quantity must be a positive whole number",
                    details={"line": index, "quantity": repr(line.quantity)},
                )

            item = items.get(line.item_id)
            if item is None and line.item_id:
                item = self.session.get(Item, line.item_id)
            if item is None:
                raise ItemNotFoundError("Item not found", details={"line": index, "item_id": line.item_id})
            items[item.id] = item

            employee_id = line.employee_id.strip() if isinstance(line.employee_id, str) else line.employee_id
            if not employee_id:
                raise MissingEmployeeAssignmentError(
                    "Every line needs an employee",
                    details={"line": index, "item_id": line.item_id},
                )
            if self.session.get(Employee, employee_id) is None:
                raise MissingEmployeeAssignmentError(
                    "Assigned employee not found",
                    details={"line": index, "employee_id": employee_id},
                )
            line.employee_id = employee_id

        requested: dict[str, int] = {}
        for line in self.lines:
            if not items[line.item_id].is_service:
                requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity

        insufficient = []
        for item_id, qty in requested.items():
            on_hand = items[item_id].stock or 0
            if qty > on_hand:
                insufficient.append({
                    "item_id": item_id,
                    "requested_quantity": qty,
                    "stock": on_hand,
                })
        if insufficient:
            raise InsufficientStockError(
                "Insufficient stock to settle sale",
                details={"items": insufficient},
            )

        return items

    # ------------------------------------------------------------------
    # Settling
    # ------------------------------------------------------------------

    def settle(self) -> SettlementResult:
        items = self.validate()
        self.state = SETTLING

        method = self._method
        tax_rate = self._tax_rate
        shortfall_costing = self._shortfall_costing
        sale_date = self._sale_date

        sale = Sale(
            id=generate_id(),
            date=sale_date,
            customer_id=self.customer_id,
            costing_method=method,
            tax_rate=tax_rate,
        )
        result = SettlementResult(sale=sale)
        touched_batches: dict[str, InventoryBatch] = {}
        subtotal = ZERO

        for position, line in enumerate(self.lines, start=1):
            item = items[line.item_id]
            price = round2(item.price)
            line_total = round2(price * line.quantity)
            cogs_total = None

            if not item.is_service:
                cost, cogs_total = self._cost_line(item, line.quantity, method, shortfall_costing)
                item.stock = (item.stock or 0) - line.quantity

                record = self._usage_record(sale, item, line.quantity, cost, cogs_total, method)
                result.inventory_records.append(record)

                item.average_cost = self.ledger.current_average_cost(item.id)
                if item not in result.items:
                    result.items.append(item)
                used_ids = {u.batch_id for u in cost.used_batches}
                for batch in self.ledger.batches(item.id):
                    if batch.id in used_ids:
                        touched_batches[batch.id] = batch

            rate = resolve_commission_rate(self.session, line.employee_id, item)
            parts = split(line_total, rate)

            sale.items.append(SaleItem(
                position=position,
                item_id=item.id,
                employee_id=line.employee_id,
                quantity=line.quantity,
                price=price,
                total=line_total,
                commission_rate=rate,
                commission_amount=parts.commission_amount,
                owner_amount=parts.owner_amount,
                cogs_total=cogs_total,
            ))
            subtotal += line_total

        sale.subtotal = round2(subtotal)
        sale.tax = round2(sale.subtotal * tax_rate)
        sale.total = round2(sale.subtotal + sale.tax)

        self.session.add(sale)
        self.session.add_all(result.inventory_records)
        self.session.flush()

        result.batches = list(touched_batches.values())
        self.state = COMMITTED
        logger.info(
            "Settled sale %s: lines=%d subtotal=%s tax=%s total=%s cogs=%s method=%s",
            sale.id,
            len(sale.items),
            sale.subtotal,
            sale.tax,
            sale.total,
            result.cogs_total,
            method,
        )
        return result

    def _cost_line(self, item: Item, quantity: int, method: str, shortfall_costing: str) -> tuple[CostResult, Decimal]:
        try:
            cost = self.ledger.drain(item.id, quantity, method)
            return cost, cost.total_cost
        except InsufficientBatchStockError as error:
            exc = error

        cost = self.ledger.drain(item.id, quantity, method, allow_shortfall=True)
        extra = ZERO
        if shortfall_costing == settings_service.SHORTFALL_LAST_AVERAGE_COST:
            extra = round2(cost.shortfall_quantity * to_decimal(item.average_cost))
        logger.warning(
            "Batch shortfall for item %s: requested=%s available=%s uncovered=%s costed at %s (%s)",
            item.id,
            exc.requested,
            exc.available,
            cost.shortfall_quantity,
            extra,
            shortfall_costing,
        )
        return cost, round2(cost.total_cost + extra)

    def _usage_record(
        self,
        sale: Sale,
        item: Item,
        quantity: int,
        cost: CostResult,
        cogs_total: Decimal,
        method: str,
    ) -> InventoryRecord:
        unit_cost = round_quantity(cogs_total / quantity)
        return InventoryRecord(
            id=generate_id(),
            item_id=item.id,
            sale_id=sale.id,
            type="Usage",
            quantity=-quantity,
            unit_cost=unit_cost,
            total_cost=round2(unit_cost * quantity),
            cogs_total=cogs_total,
            used_batches=cost.used_batches_payload(),
            costing_method=method,
            shortfall_quantity=cost.shortfall_quantity if cost.shortfall_quantity > 0 else None,
            note=f"Sale {sale.id}",
            date=sale.date,
        )


def settle_sale(
    lines,
    *,
    customer_id: str | None = None,
    date=None,
    costing_method: str | None = None,
    tax_rate=None,
) -> SettlementResult:
    """
    Settle and commit a sale as one transaction.

    Every touched item row is locked for the duration; any failure rolls the
    whole mutation set back.
    """
    cart = [CartLine.from_dict(line) if isinstance(line, dict) else line for line in lines]

    def _op():
        begin_immediate(db.session)
        item_ids = sorted({line.item_id for line in cart if line.item_id})
        if item_ids:
            lock_for_update(db.session.query(Item).filter(Item.id.in_(item_ids))).all()

        settlement = SaleSettlement(
            db.session,
            costing_method=costing_method,
            tax_rate=tax_rate,
            customer_id=customer_id,
            date=date,
        )
        settlement.add_lines(cart)
        try:
            result = settlement.settle()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op)
