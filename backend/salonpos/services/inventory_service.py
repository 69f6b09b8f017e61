# Overview: Service-layer operations for inventory movements; keeps item stock, batches and audit records in step.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import InventoryBatch, InventoryRecord, Item, RECORD_TYPES
from ..models.base import generate_id
from ..money import ZERO, round2, round_quantity, to_decimal
from ..time_utils import normalize_datetime
from . import settings_service
from .batch_ledger import BatchLedger, SqlBatchStore
from .concurrency import lock_for_update, run_with_retry
"""
Inventory movement rules (authoritative)

- Purchase / Return: stock += |quantity|, a new cost batch is opened at
  unit_cost, average_cost is recomputed from the ledger.
- Usage: stock -= |quantity| (may go negative), batches are drained under
  the current costing method; uncovered units are costed by the
  shortfallCosting setting, as for sales.
- Adjustment: stock += quantity (signed). A positive adjustment opens an
  Adjustment batch; a negative one removes stock without COGS.
- Services never carry stock and are rejected.
- Every movement appends exactly one InventoryRecord.
"""

logger = logging.getLogger(__name__)


def _load_stocked_item(session, item_id: str, *, lock: bool = False) -> Item:
    query = session.query(Item).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("item not found", details={"item_id": item_id})
    if item.is_service:
        raise ValidationError("services do not carry stock", details={"item_id": item_id})
    return item


def _parse_quantity(quantity, *, allow_negative: bool) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be a whole number", details={"quantity": repr(quantity)})
    if quantity == 0 or (quantity < 0 and not allow_negative):
        raise ValidationError("quantity must be non-zero", details={"quantity": quantity})
    return quantity


def apply_inventory_movement(
    session,
    *,
    item_id: str,
    type: str,
    quantity: int,
    unit_cost=0,
    date=None,
    note: str | None = None,
    ledger: BatchLedger | None = None,
    costing_method: str | None = None,
) -> InventoryRecord:
    """Apply one movement against the injected session; flushes, never commits."""
    if type not in RECORD_TYPES:
        raise ValidationError(f"invalid inventory type {type!r}", details={"allowed": list(RECORD_TYPES)})

    qty = _parse_quantity(quantity, allow_negative=(type == "Adjustment"))
    cost = to_decimal(unit_cost)
    if cost < 0:
        raise ValidationError("unit cost cannot be negative", details={"unit_cost": str(cost)})

    item = _load_stocked_item(session, item_id)
    ledger = ledger or BatchLedger(SqlBatchStore(session))
    occurred = normalize_datetime(date)

    record = InventoryRecord(
        id=generate_id(),
        item_id=item.id,
        type=type,
        unit_cost=cost,
        note=note,
        date=occurred,
    )

    if type in ("Purchase", "Return") or (type == "Adjustment" and qty > 0):
        units = abs(qty)
        batch = ledger.add_batch(item.id, units, cost, type=type, date=occurred)
        item.stock = (item.stock or 0) + units
        record.batch_id = batch.id
        record.quantity = units
        record.total_cost = round2(units * cost)

    elif type == "Usage":
        units = abs(qty)
        method = costing_method or settings_service.get_costing_method(session)
        shortfall_costing = settings_service.get_shortfall_costing(session)
        result = ledger.drain(item.id, units, method, allow_shortfall=True)
        extra = ZERO
        if result.shortfall_quantity > 0:
            if shortfall_costing == settings_service.SHORTFALL_LAST_AVERAGE_COST:
                extra = round2(result.shortfall_quantity * to_decimal(item.average_cost))
            logger.warning(
                "Usage of item %s exceeds batch stock by %s; uncovered units costed at %s (%s)",
                item.id,
                result.shortfall_quantity,
                extra,
                shortfall_costing,
            )
        item.stock = (item.stock or 0) - units
        record.quantity = -units
        record.total_cost = round2(units * cost)
        record.cogs_total = round2(result.total_cost + extra)
        record.used_batches = result.used_batches_payload()
        record.costing_method = method
        record.shortfall_quantity = result.shortfall_quantity if result.shortfall_quantity > 0 else None

    else:
        # Negative adjustment: stock correction only
        item.stock = (item.stock or 0) + qty
        record.quantity = qty
        record.total_cost = round2(abs(qty) * cost)

    item.average_cost = ledger.current_average_cost(item.id)

    session.add(record)
    session.flush()
    logger.info("Recorded %s of %s for item %s (stock now %s)", type, qty, item.id, item.stock)
    return record


def record_inventory(
    *,
    item_id: str,
    type: str,
    quantity: int,
    unit_cost=0,
    date=None,
    note: str | None = None,
) -> InventoryRecord:
    """Record a stock movement and commit it."""
    def _op():
        _load_stocked_item(db.session, item_id, lock=True)
        try:
            record = apply_inventory_movement(
                db.session,
                item_id=item_id,
                type=type,
                quantity=quantity,
                unit_cost=unit_cost,
                date=date,
                note=note,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return record

    return run_with_retry(_op)


def get_inventory_summary(item_id: str) -> dict:
    item = _load_stocked_item(db.session, item_id)
    ledger = BatchLedger(SqlBatchStore(db.session))
    return {
        "item_id": item.id,
        "stock": item.stock,
        "average_cost": f"{round2(item.average_cost):.2f}",
        "batch_quantity": str(round_quantity(ledger.available_quantity(item.id))),
        "batch_average_cost": f"{ledger.current_average_cost(item.id):.2f}",
        "inventory_value": f"{ledger.inventory_value(item.id):.2f}",
    }


def list_inventory_records(*, item_id: str | None = None, limit: int = 200) -> list[InventoryRecord]:
    q = db.session.query(InventoryRecord)
    if item_id is not None:
        q = q.filter(InventoryRecord.item_id == item_id)
    return q.order_by(InventoryRecord.date.desc(), InventoryRecord.created_at.desc()).limit(limit).all()


def list_batches(item_id: str, *, only_open: bool = False) -> list[InventoryBatch]:
    _load_stocked_item(db.session, item_id)
    return BatchLedger(SqlBatchStore(db.session)).batches(item_id, only_open=only_open)
