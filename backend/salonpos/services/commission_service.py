# Overview: Revenue sharing between the performing employee and the salon owner.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..errors import InvalidRateError, NotFoundError
from ..models import Category, Employee, EmployeeService, Item
from ..money import HUNDRED, ZERO, apply_rate, round2, to_decimal
"""
Revenue split rules (authoritative)

- commission_amount = round2(line_total x rate / 100)
- owner_amount = round2(line_total) - commission_amount

The owner share is always the remainder, never independently rounded and
never read from Category.salon_owner_rate, so the two parts reconcile to the
line total exactly.

Rate precedence: EmployeeService override for (employee, item), else the
item's category commission_rate.
"""


@dataclass(frozen=True)
class RevenueSplit:
    commission_amount: Decimal
    owner_amount: Decimal

    @property
    def total(self) -> Decimal:
        return self.commission_amount + self.owner_amount


def _coerce_rate(raw) -> Decimal:
    try:
        return to_decimal(raw)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidRateError("commission rate must be a number", details={"rate": repr(raw)})


def clamp_rate(raw) -> Decimal:
    """Clamp a user-entered percentage into [0, 100]."""
    rate = _coerce_rate(raw)
    if not rate.is_finite():
        raise InvalidRateError("commission rate must be finite", details={"rate": str(raw)})
    return max(ZERO, min(HUNDRED, rate))


def split(line_total, employee_rate_percent) -> RevenueSplit:
    rate = _coerce_rate(employee_rate_percent)
    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise InvalidRateError(
            "commission rate must be between 0 and 100",
            details={"rate": str(employee_rate_percent)},
        )

    total = round2(line_total)
    commission = apply_rate(total, rate)
    return RevenueSplit(commission_amount=commission, owner_amount=total - commission)


def resolve_commission_rate(session, employee_id: str, item: Item) -> Decimal:
    override = (
        session.query(EmployeeService)
        .filter_by(employee_id=employee_id, item_id=item.id)
        .first()
    )
    if override is not None:
        return to_decimal(override.commission_rate)

    category = item.category or session.get(Category, item.category_id)
    if category is None:
        raise NotFoundError("category not found", details={"item_id": item.id, "category_id": item.category_id})
    return to_decimal(category.commission_rate)


def set_category_rates(session, category_id: str, commission_rate, salon_owner_rate=None) -> Category:
    """
    Update a category's default split. Raw input is clamped; the owner rate
    defaults to the complement of the commission rate.
    """
    category = session.get(Category, category_id)
    if category is None:
        raise NotFoundError("category not found", details={"category_id": category_id})

    commission = clamp_rate(commission_rate)
    owner = HUNDRED - commission if salon_owner_rate is None else clamp_rate(salon_owner_rate)

    category.commission_rate = commission
    category.salon_owner_rate = owner
    session.flush()
    return category


def assign_employee_service(session, employee_id: str, item_id: str, commission_rate) -> EmployeeService:
    """Create or update the commission override for an employee performing an item."""
    if session.get(Employee, employee_id) is None:
        raise NotFoundError("employee not found", details={"employee_id": employee_id})
    if session.get(Item, item_id) is None:
        raise NotFoundError("item not found", details={"item_id": item_id})

    rate = clamp_rate(commission_rate)
    assignment = (
        session.query(EmployeeService)
        .filter_by(employee_id=employee_id, item_id=item_id)
        .first()
    )
    if assignment is None:
        assignment = EmployeeService(employee_id=employee_id, item_id=item_id, commission_rate=rate)
        session.add(assignment)
    else:
        assignment.commission_rate = rate
    session.flush()
    return assignment


def remove_employee_service(session, employee_id: str, item_id: str) -> bool:
    deleted = (
        session.query(EmployeeService)
        .filter_by(employee_id=employee_id, item_id=item_id)
        .delete()
    )
    session.flush()
    return bool(deleted)
