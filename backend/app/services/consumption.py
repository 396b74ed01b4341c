"""Consumption accounting.

Applies and reverses consumption amounts against a filament's active spools,
and owns the create/update/delete lifecycle of consumption entries.

Two primitives do the weight work:

- ``deduct`` removes an amount from the filament's active spools using the
  configured allocation policy (most-recently-touched spool first by
  default). It refuses, before writing anything, to take more than the
  active spools hold.
- ``restore`` puts an amount back onto the lightest active spool, or onto a
  fresh spool when the filament has none left.

Entry operations hold the affected filaments' locks and run in one
transaction: either the entry and every spool write commit, or nothing does.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.config import settings
from backend.app.core.exceptions import InsufficientStockError, NotFoundError
from backend.app.models.consumption import CONSUMPTION_KINDS, ConsumptionEntry
from backend.app.models.filament import Filament
from backend.app.models.spool import Spool
from backend.app.services.allocation import (
    WEIGHT_TOLERANCE_G,
    AllocationPolicy,
    SpoolAdjustment,
    get_allocation_policy,
)
from backend.app.services.filament_locks import FilamentLocks, commit_or_rollback, filament_locks, locked_transaction
from backend.app.services.spool_ledger import SpoolLedger

logger = logging.getLogger(__name__)

_ENTRY_FIELDS = {"filament_id", "amount_g", "amount_m", "kind", "print_name", "notes"}


class ConsumptionAccountant:
    def __init__(
        self,
        db: AsyncSession,
        policy: AllocationPolicy | None = None,
        locks: FilamentLocks | None = None,
    ):
        self.db = db
        self.ledger = SpoolLedger(db)
        self.policy = policy or get_allocation_policy(settings.allocation_policy)
        self.locks = locks or filament_locks

    # ── Primitives ───────────────────────────────────────────────────────────

    async def deduct(self, filament_id: int, amount: float) -> list[SpoolAdjustment]:
        """Remove ``amount`` grams from the filament's active spools."""
        if amount <= 0:
            return []

        spools = await self.ledger.list_active(filament_id)
        available = sum(s.weight_g for s in spools)
        if amount - available > WEIGHT_TOLERANCE_G:
            logger.warning(
                "Rejected deduction of %.2fg from filament %d: only %.2fg on %d active spool(s)",
                amount,
                filament_id,
                available,
                len(spools),
            )
            raise InsufficientStockError(filament_id, amount, available)

        plan = self.policy.plan_deduction(spools, amount)
        for adjustment in plan:
            await self.ledger.update(adjustment.spool, weight_g=adjustment.new_weight_g)

        logger.info(
            "Deducted %.2fg from filament %d across %d spool(s) (%s)",
            amount,
            filament_id,
            len(plan),
            self.policy.name,
        )
        return plan

    async def restore(self, filament_id: int, amount: float) -> Spool | None:
        """Put ``amount`` grams back onto the filament's lightest active spool."""
        if amount <= 0:
            return None

        spools = await self.ledger.list_active(filament_id)
        target = self.policy.pick_restoration_target(spools)
        if target is None:
            spool = await self.ledger.create(
                filament_id,
                starting_weight_g=amount,
                weight_g=amount,
                empty_weight_g=None,
            )
            logger.info("Restored %.2fg to filament %d on new spool %d", amount, filament_id, spool.id)
            return spool

        await self.ledger.update(target, weight_g=target.weight_g + amount)
        logger.info("Restored %.2fg to filament %d on spool %d", amount, filament_id, target.id)
        return target

    # ── Entries ──────────────────────────────────────────────────────────────

    async def get_entry(self, entry_id: int) -> ConsumptionEntry:
        entry = await self.db.get(ConsumptionEntry, entry_id, populate_existing=True)
        if not entry:
            raise NotFoundError("consumption entry", entry_id)
        return entry

    async def list_entries(
        self,
        filament_id: int | None = None,
        kind: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ConsumptionEntry]:
        query = select(ConsumptionEntry)
        if filament_id is not None:
            query = query.where(ConsumptionEntry.filament_id == filament_id)
        if kind is not None:
            query = query.where(ConsumptionEntry.kind == kind)
        if start is not None:
            query = query.where(ConsumptionEntry.created_at >= start)
        if end is not None:
            query = query.where(ConsumptionEntry.created_at <= end)
        query = query.order_by(ConsumptionEntry.created_at.desc(), ConsumptionEntry.id.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_entry(
        self,
        filament_id: int,
        amount_g: float,
        kind: str = "manual",
        amount_m: float | None = None,
        print_name: str | None = None,
        notes: str | None = None,
    ) -> ConsumptionEntry:
        if amount_g <= 0:
            raise ValueError("amount_g must be positive")
        if kind not in CONSUMPTION_KINDS:
            raise ValueError(f"Unknown consumption kind '{kind}'")

        async with locked_transaction(self.db, filament_id, locks=self.locks):
            await self._require_filament(filament_id)
            entry = ConsumptionEntry(
                filament_id=filament_id,
                amount_g=amount_g,
                amount_m=amount_m,
                kind=kind,
                print_name=print_name,
                notes=notes,
                created_at=utcnow(),
            )
            self.db.add(entry)
            await self.db.flush()
            await self.deduct(filament_id, amount_g)

        logger.info("Logged %s consumption %d: %.2fg of filament %d", kind, entry.id, amount_g, filament_id)
        return entry

    async def update_entry(self, entry_id: int, **patch) -> ConsumptionEntry:
        """Update an entry and re-balance spool weights.

        ``None`` for ``filament_id``, ``amount_g`` or ``kind`` means "keep";
        ``None`` for the free-text fields and ``amount_m`` clears them.

        Same filament: only the difference between the new and old amount is
        deducted or restored. Moved to another filament: the old amount is
        restored to the old filament and the new amount deducted from the
        new one, with no separate difference pass.
        """
        unknown = set(patch) - _ENTRY_FIELDS
        if unknown:
            raise ValueError(f"Unknown consumption fields: {', '.join(sorted(unknown))}")
        if patch.get("amount_g") is not None and patch["amount_g"] <= 0:
            raise ValueError("amount_g must be positive")
        if patch.get("kind") is not None and patch["kind"] not in CONSUMPTION_KINDS:
            raise ValueError(f"Unknown consumption kind '{patch['kind']}'")

        async with self._entry_transaction(entry_id, patch.get("filament_id")) as entry:
            old_filament_id, old_amount = entry.filament_id, entry.amount_g
            new_filament_id = patch.get("filament_id") or old_filament_id
            new_amount = patch.get("amount_g") or old_amount

            if new_filament_id != old_filament_id:
                await self._require_filament(new_filament_id)

            entry.filament_id = new_filament_id
            entry.amount_g = new_amount
            if patch.get("kind") is not None:
                entry.kind = patch["kind"]
            for field in ("amount_m", "print_name", "notes"):
                if field in patch:
                    setattr(entry, field, patch[field])
            await self.db.flush()

            if new_filament_id != old_filament_id:
                await self.restore(old_filament_id, old_amount)
                await self.deduct(new_filament_id, new_amount)
            else:
                delta = new_amount - old_amount
                if delta > 0:
                    await self.deduct(old_filament_id, delta)
                elif delta < 0:
                    await self.restore(old_filament_id, -delta)

        return entry

    async def delete_entry(self, entry_id: int) -> None:
        async with self._entry_transaction(entry_id) as entry:
            await self.restore(entry.filament_id, entry.amount_g)
            await self.db.delete(entry)
        logger.info("Deleted consumption entry %d", entry_id)

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _require_filament(self, filament_id: int) -> Filament:
        filament = await self.db.get(Filament, filament_id)
        if not filament:
            raise NotFoundError("filament", filament_id)
        return filament

    @asynccontextmanager
    async def _entry_transaction(
        self, entry_id: int, target_filament_id: int | None = None
    ) -> AsyncIterator[ConsumptionEntry]:
        """Yield the entry with its filament(s) locked inside one transaction.

        The entry is re-read after locking; if another request moved it to a
        different filament in the meantime, the locks are re-taken.
        """
        while True:
            entry = await self.get_entry(entry_id)
            filament_ids = {entry.filament_id, target_filament_id or entry.filament_id}
            async with self.locks.hold(*filament_ids):
                async with commit_or_rollback(self.db):
                    entry = await self.get_entry(entry_id)
                    if entry.filament_id in filament_ids:
                        yield entry
                        return
