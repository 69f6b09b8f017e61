# Overview: Service-layer operations for reporting; aggregates settled sales, commissions and stock.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Category, Employee, InventoryBatch, Item, Sale, SaleItem
from ..money import ZERO, HUNDRED, round2, round_quantity, to_decimal
from ..time_utils import parse_iso_datetime, to_utc_z
from .batch_ledger import BatchLedger, SqlBatchStore


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def _money(value) -> str:
    return f"{round2(value):.2f}"


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if isinstance(start, str) else start
        end_dt = parse_iso_datetime(end) if isinstance(end, str) else end
    except ValueError:
        raise ReportError("invalid date range", details={"start": start, "end": end})
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must not be after end", details={"start": str(start), "end": str(end)})
    return start_dt, end_dt


def _filter_range(query, start_dt, end_dt):
    if start_dt:
        query = query.filter(Sale.date >= start_dt)
    if end_dt:
        query = query.filter(Sale.date <= end_dt)
    return query


def sales_summary(*, start=None, end=None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    totals = _filter_range(
        db.session.query(
            func.count(Sale.id).label("sales_count"),
            func.coalesce(func.sum(Sale.subtotal), 0).label("subtotal"),
            func.coalesce(func.sum(Sale.tax), 0).label("tax"),
            func.coalesce(func.sum(Sale.total), 0).label("total"),
        ),
        start_dt,
        end_dt,
    ).one()

    split = _filter_range(
        db.session.query(
            func.coalesce(func.sum(SaleItem.commission_amount), 0).label("commission"),
            func.coalesce(func.sum(SaleItem.owner_amount), 0).label("owner"),
            func.coalesce(func.sum(SaleItem.cogs_total), 0).label("cogs"),
        ).join(Sale, Sale.id == SaleItem.sale_id),
        start_dt,
        end_dt,
    ).one()

    subtotal = to_decimal(totals.subtotal)
    cogs = to_decimal(split.cogs)
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "sales_count": int(totals.sales_count or 0),
        "subtotal": _money(subtotal),
        "tax": _money(totals.tax),
        "total": _money(totals.total),
        "employee_commission": _money(split.commission),
        "salon_owner_revenue": _money(split.owner),
        "cogs": _money(cogs),
        "gross_profit": _money(subtotal - cogs),
    }


def commission_payouts(*, start=None, end=None) -> list[dict]:
    """Commission owed per employee over the range, highest first."""
    start_dt, end_dt = _parse_range(start, end)

    rows = _filter_range(
        db.session.query(
            Employee.id.label("employee_id"),
            Employee.name.label("name"),
            func.count(SaleItem.id).label("lines"),
            func.coalesce(func.sum(SaleItem.total), 0).label("revenue"),
            func.coalesce(func.sum(SaleItem.commission_amount), 0).label("commission"),
            func.coalesce(func.sum(SaleItem.owner_amount), 0).label("owner"),
        )
        .join(SaleItem, SaleItem.employee_id == Employee.id)
        .join(Sale, Sale.id == SaleItem.sale_id),
        start_dt,
        end_dt,
    ).group_by(Employee.id, Employee.name).all()

    payouts = [
        {
            "employee_id": row.employee_id,
            "name": row.name,
            "lines": int(row.lines or 0),
            "revenue": _money(row.revenue),
            "commission": _money(row.commission),
            "salon_owner_revenue": _money(row.owner),
        }
        for row in rows
    ]
    payouts.sort(key=lambda p: (-to_decimal(p["commission"]), p["name"]))
    return payouts


def item_profitability(*, start=None, end=None) -> list[dict]:
    """Revenue, COGS and margin per item sold over the range, by revenue."""
    start_dt, end_dt = _parse_range(start, end)

    rows = _filter_range(
        db.session.query(
            Item.id.label("item_id"),
            Item.name.label("name"),
            Category.name.label("category"),
            Item.is_service.label("is_service"),
            func.coalesce(func.sum(SaleItem.quantity), 0).label("quantity"),
            func.coalesce(func.sum(SaleItem.total), 0).label("revenue"),
            func.coalesce(func.sum(SaleItem.cogs_total), 0).label("cogs"),
        )
        .join(SaleItem, SaleItem.item_id == Item.id)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .join(Category, Category.id == Item.category_id),
        start_dt,
        end_dt,
    ).group_by(Item.id, Item.name, Category.name, Item.is_service).all()

    report = []
    for row in rows:
        quantity = int(row.quantity or 0)
        revenue = to_decimal(row.revenue)
        cogs = ZERO if row.is_service else to_decimal(row.cogs)
        margin = round2((revenue - cogs) / revenue * HUNDRED) if revenue > 0 else ZERO
        report.append({
            "item_id": row.item_id,
            "name": row.name,
            "category": row.category,
            "is_service": bool(row.is_service),
            "quantity": quantity,
            "revenue": _money(revenue),
            "cogs": None if row.is_service else _money(cogs),
            "average_selling_price": _money(revenue / quantity) if quantity else _money(ZERO),
            "average_cost": None if row.is_service else _money(cogs / quantity if quantity else ZERO),
            "profit": _money(revenue - cogs),
            "profit_margin_percent": f"{margin:.2f}",
        })
    report.sort(key=lambda r: (-to_decimal(r["revenue"]), r["name"]))
    return report


def stock_valuation() -> dict:
    """On-hand stock and the batch-ledger value of what remains, per item."""
    ledger = BatchLedger(SqlBatchStore(db.session))
    items = (
        db.session.query(Item)
        .filter(Item.is_service.is_(False), Item.is_active.is_(True))
        .order_by(Item.name.asc())
        .all()
    )

    rows = []
    total_value = ZERO
    for item in items:
        value = ledger.inventory_value(item.id)
        total_value += value
        rows.append({
            "item_id": item.id,
            "name": item.name,
            "stock": item.stock,
            "batch_quantity": str(round_quantity(ledger.available_quantity(item.id))),
            "average_cost": _money(ledger.current_average_cost(item.id)),
            "inventory_value": _money(value),
        })

    return {"items": rows, "total_value": _money(total_value)}


def low_stock(*, threshold: int | None = None) -> list[dict]:
    """
    Physical items at or below their reorder threshold. Items without their
    own threshold use the configured LOW_STOCK_THRESHOLD.
    """
    default = threshold if threshold is not None else current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    limit = func.coalesce(Item.reorder_threshold, default)
    items = (
        db.session.query(Item)
        .filter(Item.is_service.is_(False), Item.is_active.is_(True), Item.stock <= limit)
        .order_by(Item.stock.asc(), Item.name.asc())
        .all()
    )
    return [
        {
            "item_id": item.id,
            "name": item.name,
            "stock": item.stock,
            "reorder_threshold": item.reorder_threshold if item.reorder_threshold is not None else default,
        }
        for item in items
    ]


def batch_tracking(item_id: str) -> list[dict]:
    """Each batch of an item with how much of it has been consumed."""
    batches = (
        db.session.query(InventoryBatch)
        .filter(InventoryBatch.item_id == item_id)
        .order_by(InventoryBatch.date.asc(), InventoryBatch.seq.asc())
        .all()
    )
    rows = []
    for batch in batches:
        quantity = to_decimal(batch.quantity)
        remaining = to_decimal(batch.remaining_quantity)
        rows.append({
            "batch_id": batch.id,
            "type": batch.type,
            "date": to_utc_z(batch.date),
            "quantity": str(quantity),
            "remaining_quantity": str(remaining),
            "consumed_quantity": str(quantity - remaining),
            "unit_cost": str(batch.unit_cost),
            "remaining_value": _money(remaining * to_decimal(batch.unit_cost)),
            "status": "Drained" if remaining <= 0 else ("Open" if remaining == quantity else "Partial"),
        })
    return rows
