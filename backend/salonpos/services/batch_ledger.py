# Overview: Inventory batch ledger; owns batch remaining quantities and drains them under a costing policy.

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..errors import InsufficientBatchStockError, ValidationError
from ..models import InventoryBatch, BATCH_TYPES
from ..models.base import generate_id
from ..money import ZERO, round2, round_quantity, to_decimal
from ..time_utils import normalize_datetime
from .costing import CostResult, CostingPolicy, get_policy
"""
Batch ledger invariants (authoritative)

- Batches for an item are ordered by acquisition: date, then insertion seq.
- The ledger is the only writer of remaining_quantity.
- Batches are never deleted by draining; drained batches stay at 0.
- available_quantity is a cost-basis figure. It is NOT the item's stock,
  which is tracked separately on Item and may disagree with it.
- drain() either fully covers the request or raises before mutating,
  unless the caller explicitly accepts a shortfall.
"""

logger = logging.getLogger(__name__)


class BatchStore:
    """Backing store the ledger reads batches from and saves mutations to."""

    def list_batches(self, item_id: str) -> list[InventoryBatch]:
        raise NotImplementedError

    def add(self, batch: InventoryBatch) -> None:
        raise NotImplementedError

    def save(self, batches: list[InventoryBatch]) -> None:
        raise NotImplementedError

    def next_seq(self, item_id: str) -> int:
        raise NotImplementedError


class SqlBatchStore(BatchStore):
    """
    Session-backed store. Writes are flushed, never committed: the caller
    owns the transaction boundary.
    """

    def __init__(self, session):
        self.session = session

    def list_batches(self, item_id: str) -> list[InventoryBatch]:
        return (
            self.session.query(InventoryBatch)
            .filter(InventoryBatch.item_id == item_id)
            .order_by(InventoryBatch.date.asc(), InventoryBatch.seq.asc())
            .all()
        )

    def add(self, batch: InventoryBatch) -> None:
        self.session.add(batch)
        self.session.flush()

    def save(self, batches: list[InventoryBatch]) -> None:
        for batch in batches:
            self.session.add(batch)
        self.session.flush()

    def next_seq(self, item_id: str) -> int:
        current = (
            self.session.query(func.max(InventoryBatch.seq))
            .filter(InventoryBatch.item_id == item_id)
            .scalar()
        )
        return int(current or 0) + 1


class MemoryBatchStore(BatchStore):
    """In-process store keyed by item id; batches are transient model objects."""

    def __init__(self):
        self._batches: dict[str, list[InventoryBatch]] = defaultdict(list)

    def list_batches(self, item_id: str) -> list[InventoryBatch]:
        return sorted(self._batches.get(item_id, []), key=lambda b: (b.date, b.seq))

    def add(self, batch: InventoryBatch) -> None:
        self._batches[batch.item_id].append(batch)

    def save(self, batches: list[InventoryBatch]) -> None:
        # Objects are mutated in place; nothing further to write.
        return None

    def next_seq(self, item_id: str) -> int:
        return len(self._batches.get(item_id, [])) + 1


class BatchLedger:
    def __init__(self, store: BatchStore):
        self.store = store

    def add_batch(
        self,
        item_id: str,
        quantity,
        unit_cost,
        type: str = "Purchase",
        date: datetime | str | None = None,
    ) -> InventoryBatch:
        qty = round_quantity(quantity)
        cost = to_decimal(unit_cost)
        if qty <= 0:
            raise ValidationError("batch quantity must be positive", details={"quantity": str(qty)})
        if cost < 0:
            raise ValidationError("batch unit cost cannot be negative", details={"unit_cost": str(cost)})
        if type not in BATCH_TYPES:
            raise ValidationError(
                f"invalid batch type {type!r}",
                details={"allowed": list(BATCH_TYPES)},
            )

        batch = InventoryBatch(
            id=generate_id(),
            item_id=item_id,
            type=type,
            quantity=qty,
            unit_cost=cost,
            remaining_quantity=qty,
            date=normalize_datetime(date),
            seq=self.store.next_seq(item_id),
        )
        self.store.add(batch)
        logger.debug("Added %s batch %s for item %s: %s @ %s", type, batch.id, item_id, qty, cost)
        return batch

    def batches(self, item_id: str, *, only_open: bool = False) -> list[InventoryBatch]:
        rows = self.store.list_batches(item_id)
        if only_open:
            rows = [b for b in rows if to_decimal(b.remaining_quantity) > 0]
        return rows

    def available_quantity(self, item_id: str) -> Decimal:
        return sum((to_decimal(b.remaining_quantity) for b in self.batches(item_id, only_open=True)), ZERO)

    def current_average_cost(self, item_id: str) -> Decimal:
        """Weighted average unit cost of what remains; 0 when nothing remains."""
        open_batches = self.batches(item_id, only_open=True)
        units = sum((to_decimal(b.remaining_quantity) for b in open_batches), ZERO)
        if units <= 0:
            return round2(ZERO)
        value = sum(
            (to_decimal(b.remaining_quantity) * to_decimal(b.unit_cost) for b in open_batches),
            ZERO,
        )
        return round2(value / units)

    def inventory_value(self, item_id: str) -> Decimal:
        return round2(sum(
            (to_decimal(b.remaining_quantity) * to_decimal(b.unit_cost) for b in self.batches(item_id, only_open=True)),
            ZERO,
        ))

    def drain(
        self,
        item_id: str,
        quantity,
        policy: str | CostingPolicy,
        *,
        allow_shortfall: bool = False,
    ) -> CostResult:
        """
        Consume quantity units from the item's batches under policy.

        Raises InsufficientBatchStockError (before touching anything) when the
        batches cannot cover the request, unless allow_shortfall is set, in
        which case what is available is drained and the rest is reported as
        shortfall_quantity.
        """
        policy = get_policy(policy)
        requested = round_quantity(quantity)
        if requested <= 0:
            return CostResult()

        open_batches = self.batches(item_id, only_open=True)
        available = sum((to_decimal(b.remaining_quantity) for b in open_batches), ZERO)
        if requested > available and not allow_shortfall:
            raise InsufficientBatchStockError(item_id, requested, available)

        result = policy.compute_cogs(open_batches, requested)

        touched = {u.batch_id for u in result.used_batches}
        self.store.save([b for b in open_batches if b.id in touched])

        logger.debug(
            "Drained item %s via %s: requested=%s cost=%s batches=%d shortfall=%s",
            item_id,
            policy.name,
            requested,
            result.total_cost,
            len(result.used_batches),
            result.shortfall_quantity,
        )
        return result
