from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id, money_str, decimal_str

BATCH_TYPES = ("Purchase", "Return", "Adjustment")
RECORD_TYPES = ("Purchase", "Usage", "Return", "Adjustment")


class InventoryBatch(db.Model):
    """
    Stock acquired at a point in time, at a single unit cost.

    Everything except remaining_quantity is fixed once created. Only the
    batch ledger writes remaining_quantity (0 <= remaining <= quantity).
    Fully drained batches are kept for audit.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.Index("ix_batches_item_date", "item_id", "date", "seq"),
        db.CheckConstraint("quantity > 0", name="ck_batches_quantity_positive"),
        db.CheckConstraint("unit_cost >= 0", name="ck_batches_unit_cost_nonneg"),
        db.CheckConstraint("remaining_quantity >= 0", name="ck_batches_remaining_nonneg"),
    )

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    item_id = db.Column(db.String(64), db.ForeignKey("items.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, default="Purchase")
    quantity = db.Column(db.Numeric(12, 4), nullable=False)
    unit_cost = db.Column(db.Numeric(12, 4), nullable=False)
    remaining_quantity = db.Column(db.Numeric(12, 4), nullable=False)

    # Business time of acquisition; seq breaks ties in insertion order
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    seq = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch id={self.id!r} item_id={self.item_id!r} "
            f"remaining={self.remaining_quantity}/{self.quantity} @ {self.unit_cost}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "type": self.type,
            "quantity": decimal_str(self.quantity),
            "unit_cost": decimal_str(self.unit_cost),
            "remaining_quantity": decimal_str(self.remaining_quantity),
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
        }


class InventoryRecord(db.Model):
    """
    Audit-log entry for a stock movement.

    quantity is signed: Usage and negative adjustments are negative.
    total_cost is always |quantity| x unit_cost. Usage rows carry the COGS
    allocation and the batches it drew from.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.Index("ix_invrec_item_date", "item_id", "date"),
    )

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    item_id = db.Column(db.String(64), db.ForeignKey("items.id"), nullable=False, index=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=True, index=True)
    batch_id = db.Column(db.String(64), db.ForeignKey("inventory_batches.id"), nullable=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 4), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    cogs_total = db.Column(db.Numeric(12, 2), nullable=True)
    used_batches = db.Column(db.JSON, nullable=True)
    costing_method = db.Column(db.String(32), nullable=True)
    shortfall_quantity = db.Column(db.Numeric(12, 4), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("inventory_records", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("inventory_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "sale_id": self.sale_id,
            "batch_id": self.batch_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit_cost": decimal_str(self.unit_cost),
            "total_cost": money_str(self.total_cost),
            "cogs_total": money_str(self.cogs_total),
            "used_batches": self.used_batches or [],
            "costing_method": self.costing_method,
            "shortfall_quantity": decimal_str(self.shortfall_quantity),
            "note": self.note,
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
        }
