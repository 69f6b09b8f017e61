from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import generate_id, money_str, decimal_str


class Category(db.Model):
    """
    Groups items and declares the default revenue split.

    commission_rate is the employee percentage, salon_owner_rate the owner
    percentage. They are expected to sum to 100 but nothing enforces it:
    settlement derives the owner share as the remainder of the line total.
    """
    __tablename__ = "categories"

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    salon_owner_rate = db.Column(db.Numeric(5, 2), nullable=False, default=100)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    roles = db.relationship("Role", secondary="category_roles", lazy="selectin", order_by="Role.name")

    def __repr__(self) -> str:
        return f"<Category id={self.id!r} name={self.name!r} commission_rate={self.commission_rate}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "commission_rate": decimal_str(self.commission_rate),
            "salon_owner_rate": decimal_str(self.salon_owner_rate),
            "role_ids": [role.id for role in self.roles],
            "created_at": to_utc_z(self.created_at),
        }


class Role(db.Model):
    """Employee role (Hairdresser, Nail Technician, Salon Owner, ...)."""
    __tablename__ = "roles"

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    name = db.Column(db.String(128), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class CategoryRole(db.Model):
    """Which roles may perform the items of a category."""
    __tablename__ = "category_roles"
    __table_args__ = (
        db.UniqueConstraint("category_id", "role_id", name="uq_category_roles_pair"),
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.String(64), db.ForeignKey("categories.id"), nullable=False, index=True)
    role_id = db.Column(db.String(64), db.ForeignKey("roles.id"), nullable=False, index=True)


class Item(db.Model):
    """
    Sellable product or service.

    stock is the authoritative on-hand count and is only meaningful for
    physical items (is_service=False). average_cost is derived from the batch
    ledger after every movement and is never used as a source of truth.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_category_name", "category_id", "name"),
    )

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.String(64), db.ForeignKey("categories.id"), nullable=False, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_service = db.Column(db.Boolean, nullable=False, default=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    average_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    reorder_threshold = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id!r} name={self.name!r} stock={self.stock} is_service={self.is_service}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "price": money_str(self.price),
            "is_service": self.is_service,
            "stock": None if self.is_service else self.stock,
            "average_cost": None if self.is_service else money_str(self.average_cost),
            "reorder_threshold": self.reorder_threshold,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    role_id = db.Column(db.String(64), db.ForeignKey("roles.id"), nullable=True, index=True)
    phone = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    role = db.relationship("Role", backref=db.backref("employees", lazy=True))

    def __repr__(self) -> str:
        return f"<Employee id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role_id": self.role_id,
            "role": self.role.name if self.role else None,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class EmployeeService(db.Model):
    """
    Per (employee, item) commission override.

    When present its commission_rate replaces the category default for that
    employee performing that item; the owner keeps 100 - rate.
    """
    __tablename__ = "employee_services"
    __table_args__ = (
        db.UniqueConstraint("employee_id", "item_id", name="uq_employee_services_pair"),
    )

    id = db.Column(db.String(64), primary_key=True, default=generate_id)
    employee_id = db.Column(db.String(64), db.ForeignKey("employees.id"), nullable=False, index=True)
    item_id = db.Column(db.String(64), db.ForeignKey("items.id"), nullable=False, index=True)
    commission_rate = db.Column(db.Numeric(5, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", backref=db.backref("services", lazy=True))
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "item_id": self.item_id,
            "commission_rate": decimal_str(self.commission_rate),
            "created_at": to_utc_z(self.created_at),
        }
