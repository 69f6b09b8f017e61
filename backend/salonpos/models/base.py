from __future__ import annotations

import uuid


def generate_id() -> str:
    """Opaque string primary key (records are addressed by string ids)."""
    return uuid.uuid4().hex


def money_str(value) -> str | None:
    return None if value is None else f"{value:.2f}"


def decimal_str(value) -> str | None:
    return None if value is None else str(value)
