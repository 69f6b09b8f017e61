# Overview: Category-to-role staffing lookup; which employees may perform a category's items.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError
from ..models import Category, CategoryRole, Employee, Item, Role


def _get_category(category_id: str) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("category not found", details={"category_id": category_id})
    return category


def set_category_roles(category_id: str, role_ids: list[str]) -> Category:
    """Replace the set of roles eligible for a category."""
    category = _get_category(category_id)

    roles = []
    for role_id in dict.fromkeys(role_ids):
        role = db.session.get(Role, role_id)
        if role is None:
            raise NotFoundError("role not found", details={"role_id": role_id})
        roles.append(role)

    category.roles = roles
    db.session.commit()
    return category


def eligible_employees(category_id: str) -> list[Employee]:
    """Active employees whose role is mapped to the category, by name."""
    _get_category(category_id)
    return (
        db.session.query(Employee)
        .join(CategoryRole, CategoryRole.role_id == Employee.role_id)
        .filter(CategoryRole.category_id == category_id, Employee.is_active.is_(True))
        .order_by(Employee.name.asc(), Employee.id.asc())
        .all()
    )


def suggest_employee(item_id: str) -> Employee | None:
    """
    Default employee for a cart line: the first eligible employee for the
    item's category, else the first active employee, else None.
    """
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundError("item not found", details={"item_id": item_id})

    eligible = eligible_employees(item.category_id)
    if eligible:
        return eligible[0]

    return (
        db.session.query(Employee)
        .filter(Employee.is_active.is_(True))
        .order_by(Employee.name.asc(), Employee.id.asc())
        .first()
    )
