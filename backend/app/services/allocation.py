"""Allocation policies: how a consumption amount is spread over a filament's spools.

Policies only plan; they never touch the database. The accountant checks
that the spools hold enough material before asking for a plan, and writes
each adjustment through the spool ledger.

Spool-like objects need ``id``, ``weight_g``, ``starting_weight_g``,
``created_at`` and ``updated_at``.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

# Float noise below this is treated as zero
WEIGHT_TOLERANCE_G = 1e-6


@dataclass(frozen=True, slots=True)
class SpoolAdjustment:
    spool: Any
    new_weight_g: float

    @property
    def delta_g(self) -> float:
        return self.new_weight_g - self.spool.weight_g


def _drain(ordered_spools: Sequence[Any], amount: float) -> list[SpoolAdjustment]:
    """Take ``amount`` from spools in the given order, emptying each before moving on."""
    plan: list[SpoolAdjustment] = []
    remaining = amount
    for spool in ordered_spools:
        if remaining <= WEIGHT_TOLERANCE_G:
            break
        if spool.weight_g <= 0:
            continue
        if spool.weight_g >= remaining:
            plan.append(SpoolAdjustment(spool, spool.weight_g - remaining))
            remaining = 0
        else:
            plan.append(SpoolAdjustment(spool, 0))
            remaining -= spool.weight_g
    return plan


class AllocationPolicy(ABC):
    """Strategy for deducting from and restoring to a set of active spools."""

    name: str = ""

    @abstractmethod
    def plan_deduction(self, spools: Sequence[Any], amount: float) -> list[SpoolAdjustment]:
        """Return the weight changes that remove ``amount`` grams from ``spools``."""

    def pick_restoration_target(self, spools: Sequence[Any]) -> Any | None:
        """Restored material goes back onto the lightest active spool, whole."""
        if not spools:
            return None
        return min(spools, key=lambda s: (s.weight_g, s.id))


class RecencyFirstAllocator(AllocationPolicy):
    """Deduct from the most recently touched spool first.

    If any spool has been used (weight below its starting weight), the one
    updated most recently is the primary target; otherwise the newest spool
    is. When the primary can't cover the amount it is emptied and the rest
    comes from the other spools, heaviest first. Not FIFO by age of stock.
    """

    name = "recency_first"

    @staticmethod
    def primary_target(spools: Sequence[Any]) -> Any | None:
        if not spools:
            return None
        used = [s for s in spools if s.weight_g < s.starting_weight_g]
        if used:
            return max(used, key=lambda s: (s.updated_at, s.id))
        return max(spools, key=lambda s: (s.created_at, s.id))

    def plan_deduction(self, spools: Sequence[Any], amount: float) -> list[SpoolAdjustment]:
        primary = self.primary_target(spools)
        if primary is None or amount <= 0:
            return []
        others = sorted((s for s in spools if s is not primary), key=lambda s: (-s.weight_g, s.id))
        return _drain([primary, *others], amount)


class FifoAllocator(AllocationPolicy):
    """Deduct from the oldest spool first."""

    name = "fifo"

    def plan_deduction(self, spools: Sequence[Any], amount: float) -> list[SpoolAdjustment]:
        if amount <= 0:
            return []
        return _drain(sorted(spools, key=lambda s: (s.created_at, s.id)), amount)


class ProportionalAllocator(AllocationPolicy):
    """Split the amount across spools in proportion to their current weight."""

    name = "proportional"

    def plan_deduction(self, spools: Sequence[Any], amount: float) -> list[SpoolAdjustment]:
        candidates = sorted((s for s in spools if s.weight_g > 0), key=lambda s: s.id)
        total = sum(s.weight_g for s in candidates)
        if amount <= 0 or total <= 0:
            return []

        plan: list[SpoolAdjustment] = []
        remaining = min(amount, total)
        for index, spool in enumerate(candidates):
            if index == len(candidates) - 1:
                # Last spool absorbs rounding so the plan sums to the amount
                share = remaining
            else:
                share = min(spool.weight_g, amount * spool.weight_g / total)
            share = min(share, spool.weight_g)
            plan.append(SpoolAdjustment(spool, max(0.0, spool.weight_g - share)))
            remaining -= share
        return plan


_POLICIES: dict[str, type[AllocationPolicy]] = {
    RecencyFirstAllocator.name: RecencyFirstAllocator,
    FifoAllocator.name: FifoAllocator,
    ProportionalAllocator.name: ProportionalAllocator,
}


def get_allocation_policy(name: str) -> AllocationPolicy:
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown allocation policy '{name}' (expected one of: {', '.join(_POLICIES)})") from None
