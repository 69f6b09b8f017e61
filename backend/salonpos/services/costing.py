# Overview: Inventory costing policies; allocate cost of goods sold across cost batches.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from ..errors import ValidationError
from ..money import ZERO, round2, round_quantity, to_decimal
"""
Costing invariants (authoritative)

- Policies receive open batches in acquisition order (oldest first, ties in
  insertion order) and mutate remaining_quantity in place. Persisting the
  mutation is the batch ledger's job.
- A request for quantity <= 0, or against batches with nothing remaining, is
  a no-op: total_cost 0, no used batches, nothing mutated.
- Policies never drive a batch below zero. Whatever cannot be covered is
  reported as shortfall_quantity and carries no cost here.
"""

FIFO = "FIFO"
WEIGHTED_AVERAGE = "WeightedAverage"
COSTING_METHODS = (FIFO, WEIGHTED_AVERAGE)


@dataclass(frozen=True)
class UsedBatch:
    batch_id: str
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "quantity": str(self.quantity),
            "unit_cost": str(self.unit_cost),
            "total_cost": f"{self.total_cost:.2f}",
        }


@dataclass
class CostResult:
    total_cost: Decimal = ZERO
    used_batches: list[UsedBatch] = field(default_factory=list)
    shortfall_quantity: Decimal = ZERO

    @property
    def covered_quantity(self) -> Decimal:
        return sum((u.quantity for u in self.used_batches), ZERO)

    @property
    def unit_cost(self) -> Decimal:
        """Effective cost per covered unit (0 when nothing was covered)."""
        covered = self.covered_quantity
        if covered <= 0:
            return ZERO
        return round2(self.total_cost / covered)

    def used_batches_payload(self) -> list[dict]:
        return [u.to_dict() for u in self.used_batches]


def _open_batches(batches: Iterable) -> list:
    return [b for b in batches if to_decimal(b.remaining_quantity) > 0]


class CostingPolicy:
    """Strategy interface: compute_cogs(batches, quantity) -> CostResult."""

    name: str = ""

    def compute_cogs(self, batches: Iterable, quantity) -> CostResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class FifoPolicy(CostingPolicy):
    """Oldest batch first; entries accumulate unrounded and the total is rounded once."""

    name = FIFO

    def compute_cogs(self, batches: Iterable, quantity) -> CostResult:
        requested = round_quantity(quantity)
        if requested <= 0:
            return CostResult()

        open_batches = _open_batches(batches)
        if not open_batches:
            return CostResult(shortfall_quantity=requested)

        remaining = requested
        total = ZERO
        used: list[UsedBatch] = []

        for batch in open_batches:
            if remaining <= 0:
                break

            on_hand = to_decimal(batch.remaining_quantity)
            take = min(remaining, on_hand)
            unit_cost = to_decimal(batch.unit_cost)
            line_cost = take * unit_cost

            batch.remaining_quantity = on_hand - take
            remaining -= take
            total += line_cost

            used.append(UsedBatch(batch.id, take, unit_cost, round2(line_cost)))

        return CostResult(total_cost=round2(total), used_batches=used, shortfall_quantity=remaining)


class WeightedAveragePolicy(CostingPolicy):
    """
    Blend every open batch into one unit cost, then drain all batches
    proportionally to their share of what remains.

    Proportional draining leaves fractional remainders (4 dp). The last open
    batch absorbs the rounding remainder so consumption sums to exactly the
    covered quantity.
    """

    name = WEIGHTED_AVERAGE

    def compute_cogs(self, batches: Iterable, quantity) -> CostResult:
        requested = round_quantity(quantity)
        if requested <= 0:
            return CostResult()

        open_batches = _open_batches(batches)
        if not open_batches:
            return CostResult(shortfall_quantity=requested)

        total_remaining = sum((to_decimal(b.remaining_quantity) for b in open_batches), ZERO)
        total_value = sum(
            (to_decimal(b.remaining_quantity) * to_decimal(b.unit_cost) for b in open_batches),
            ZERO,
        )
        blended = total_value / total_remaining

        covered = min(requested, total_remaining)
        total_cost = round2(covered * blended)

        used: list[UsedBatch] = []
        allocated = ZERO
        last_index = len(open_batches) - 1

        for index, batch in enumerate(open_batches):
            on_hand = to_decimal(batch.remaining_quantity)
            take = min(on_hand, covered - allocated)
            if index != last_index:
                take = min(take, round_quantity(covered * on_hand / total_remaining))
            if take <= 0:
                continue

            unit_cost = to_decimal(batch.unit_cost)
            batch.remaining_quantity = on_hand - take
            allocated += take

            used.append(UsedBatch(batch.id, take, unit_cost, round2(take * unit_cost)))

        return CostResult(
            total_cost=total_cost,
            used_batches=used,
            shortfall_quantity=requested - allocated,
        )


_POLICIES: dict[str, CostingPolicy] = {
    FIFO: FifoPolicy(),
    WEIGHTED_AVERAGE: WeightedAveragePolicy(),
}


def _normalize(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


def normalize_costing_method(name: str | None) -> str:
    """Map user input ("fifo", "weighted_average", ...) to a canonical name."""
    if not name or not isinstance(name, str):
        raise ValidationError("costing method required", details={"allowed": list(COSTING_METHODS)})
    wanted = _normalize(name)
    for canonical in COSTING_METHODS:
        if _normalize(canonical) == wanted:
            return canonical
    raise ValidationError(
        f"unknown costing method {name!r}",
        details={"allowed": list(COSTING_METHODS)},
    )


def get_policy(name: str | CostingPolicy) -> CostingPolicy:
    if isinstance(name, CostingPolicy):
        return name
    return _POLICIES[normalize_costing_method(name)]
