# Overview: Process-wide settings (costing method, tax rate, shortfall costing) backed by the settings table.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import Setting
from ..money import to_decimal
from .costing import COSTING_METHODS, normalize_costing_method


COSTING_METHOD_KEY = "costingMethod"
TAX_RATE_KEY = "taxRate"
SHORTFALL_COSTING_KEY = "shortfallCosting"

SHORTFALL_ZERO = "Zero"
SHORTFALL_LAST_AVERAGE_COST = "LastAverageCost"
SHORTFALL_POLICIES = (SHORTFALL_ZERO, SHORTFALL_LAST_AVERAGE_COST)

DEFAULT_COSTING_METHOD = "FIFO"
DEFAULT_TAX_RATE = "0.10"


def _session(session):
    return session if session is not None else db.session


def _config(key: str, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        # No application context: fall back to the built-in default
        return default


def _read(key: str, session=None) -> str | None:
    row = _session(session).get(Setting, key)
    return row.value if row is not None else None


def _write(key: str, value: str, session=None) -> Setting:
    s = _session(session)
    row = s.get(Setting, key)
    if row is None:
        row = Setting(key=key, value=value)
        s.add(row)
    else:
        row.value = value
    s.flush()
    return row


def get_costing_method(session=None) -> str:
    raw = _read(COSTING_METHOD_KEY, session) or _config("COSTING_METHOD", DEFAULT_COSTING_METHOD)
    return normalize_costing_method(raw)


def set_costing_method(name: str, session=None) -> str:
    """Takes effect for the next sale; settled sales are never recomputed."""
    canonical = normalize_costing_method(name)
    _write(COSTING_METHOD_KEY, canonical, session)
    return canonical


def _parse_tax_rate(raw) -> Decimal:
    try:
        rate = to_decimal(raw)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("tax rate must be a number", details={"tax_rate": repr(raw)})
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError("tax rate must be a fraction between 0 and 1", details={"tax_rate": str(raw)})
    return rate


def get_tax_rate(session=None) -> Decimal:
    raw = _read(TAX_RATE_KEY, session)
    if raw is None:
        raw = _config("TAX_RATE", DEFAULT_TAX_RATE)
    return _parse_tax_rate(raw)


def set_tax_rate(rate, session=None) -> Decimal:
    parsed = _parse_tax_rate(rate)
    _write(TAX_RATE_KEY, str(parsed), session)
    return parsed


def _normalize_shortfall(name) -> str:
    if isinstance(name, str):
        for canonical in SHORTFALL_POLICIES:
            if canonical.lower() == name.strip().lower():
                return canonical
    raise ValidationError(
        f"unknown shortfall costing {name!r}",
        details={"allowed": list(SHORTFALL_POLICIES)},
    )


def get_shortfall_costing(session=None) -> str:
    raw = _read(SHORTFALL_COSTING_KEY, session) or _config("SHORTFALL_COSTING", SHORTFALL_ZERO)
    return _normalize_shortfall(raw)


def set_shortfall_costing(name: str, session=None) -> str:
    canonical = _normalize_shortfall(name)
    _write(SHORTFALL_COSTING_KEY, canonical, session)
    return canonical


def get_settings(session=None) -> dict:
    return {
        COSTING_METHOD_KEY: get_costing_method(session),
        TAX_RATE_KEY: str(get_tax_rate(session)),
        SHORTFALL_COSTING_KEY: get_shortfall_costing(session),
        "availableCostingMethods": list(COSTING_METHODS),
        "availableShortfallCosting": list(SHORTFALL_POLICIES),
    }
