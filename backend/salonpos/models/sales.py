from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id, money_str, decimal_str


class Sale(db.Model):
    """
    Settled sale. Immutable once created; corrections are new records.

    costing_method and tax_rate snapshot the settings in force when the sale
    settled so that later configuration changes never reinterpret it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_date", "date"),
    )

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    tax_rate = db.Column(db.Numeric(6, 4), nullable=False)
    costing_method = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id!r} total={self.total} lines={len(self.items)}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.date),
            "customer_id": self.customer_id,
            "items": [line.to_dict() for line in self.items],
            "subtotal": money_str(self.subtotal),
            "tax": money_str(self.tax),
            "total": money_str(self.total),
            "tax_rate": decimal_str(self.tax_rate),
            "costing_method": self.costing_method,
        }


class SaleItem(db.Model):
    """
    Finalized sale line.

    commission_amount + owner_amount == total, exactly, because the owner
    share is assigned as the remainder.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_items_position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    item_id = db.Column(db.String(64), db.ForeignKey("items.id"), nullable=False, index=True)
    employee_id = db.Column(db.String(64), db.ForeignKey("employees.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    commission_rate = db.Column(db.Numeric(5, 2), nullable=False)
    commission_amount = db.Column(db.Numeric(12, 2), nullable=False)
    owner_amount = db.Column(db.Numeric(12, 2), nullable=False)

    # Null for services
    cogs_total = db.Column(db.Numeric(12, 2), nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    item = db.relationship("Item")
    employee = db.relationship("Employee")

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "employee_id": self.employee_id,
            "quantity": self.quantity,
            "price": money_str(self.price),
            "total": money_str(self.total),
            "commission_rate": decimal_str(self.commission_rate),
            "commission_amount": money_str(self.commission_amount),
            "owner_amount": money_str(self.owner_amount),
            "cogs_total": money_str(self.cogs_total),
        }
