"""Filament-level view over the spool ledger.

Two different "remaining" quantities are derived here and kept apart:

- gross remaining: sum of current spool weights (tare included) over the
  filament's active spools. This is what consumption is checked against.
- net remaining: the same sum with each spool's empty weight taken off.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import InUseError, NotFoundError
from backend.app.models.consumption import ConsumptionEntry
from backend.app.models.filament import Filament
from backend.app.models.spool import Spool
from backend.app.services.filament_locks import FilamentLocks, filament_locks, locked_transaction
from backend.app.services.spool_ledger import SpoolLedger

logger = logging.getLogger(__name__)

_FILAMENT_FIELDS = {"name", "material", "color_name", "color_hex", "manufacturer", "notes", "archived"}

_gross_weight = func.coalesce(func.sum(Spool.weight_g), 0.0)
_net_weight = func.coalesce(func.sum(Spool.weight_g - func.coalesce(Spool.empty_weight_g, 0.0)), 0.0)


class FilamentAggregate:
    def __init__(self, db: AsyncSession, locks: FilamentLocks | None = None):
        self.db = db
        self.ledger = SpoolLedger(db)
        self.locks = locks or filament_locks

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get(self, filament_id: int) -> Filament:
        result = await self.db.execute(select(Filament).where(Filament.id == filament_id))
        filament = result.scalar_one_or_none()
        if not filament:
            raise NotFoundError("filament", filament_id)
        return filament

    async def list_filaments(self, include_archived: bool = False) -> list[Filament]:
        query = select(Filament)
        if not include_archived:
            query = query.where(Filament.archived.is_(False))
        query = query.order_by(Filament.created_at.desc(), Filament.id.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def gross_remaining(self, filament_id: int) -> float:
        result = await self.db.execute(
            select(_gross_weight).where(Spool.filament_id == filament_id, Spool.archived.is_(False))
        )
        return float(result.scalar_one())

    async def net_remaining(self, filament_id: int) -> float:
        result = await self.db.execute(
            select(_net_weight).where(Spool.filament_id == filament_id, Spool.archived.is_(False))
        )
        return float(result.scalar_one())

    async def remaining_by_filament(self) -> dict[int, tuple[float, float]]:
        """Gross and net remaining for every filament that has active spools."""
        result = await self.db.execute(
            select(Spool.filament_id, _gross_weight, _net_weight)
            .where(Spool.archived.is_(False))
            .group_by(Spool.filament_id)
        )
        return {row[0]: (float(row[1]), float(row[2])) for row in result.all()}

    async def has_consumption_entries(self, filament_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(ConsumptionEntry.id)).where(ConsumptionEntry.filament_id == filament_id)
        )
        return result.scalar_one() > 0

    async def suggest_for(self, material: str, color_hex: str | None = None) -> list[Filament]:
        """Active filaments of a material that still have stock, fullest first.

        Tries material + color first and falls back to material only.
        """
        if not material:
            return []

        remaining = await self.remaining_by_filament()
        query = select(Filament).where(
            Filament.archived.is_(False),
            func.lower(Filament.material) == material.lower(),
        )
        candidates = list((await self.db.execute(query)).scalars().all())
        in_stock = [f for f in candidates if remaining.get(f.id, (0.0, 0.0))[0] > 0]

        if color_hex:
            by_color = [f for f in in_stock if (f.color_hex or "").lower() == color_hex.lower()]
            if by_color:
                in_stock = by_color

        return sorted(in_stock, key=lambda f: (-remaining[f.id][0], f.id))

    async def needs_restock(self, threshold_g: float) -> list[Filament]:
        """Active filaments running low, emptiest first.

        A filament qualifies when its gross remaining is above zero and at or
        below ``threshold_g``; filaments with nothing left are not reported.
        """
        remaining = await self.remaining_by_filament()
        low = {fid: gross for fid, (gross, _net) in remaining.items() if 0 < gross <= threshold_g}
        if not low:
            return []

        result = await self.db.execute(
            select(Filament).where(Filament.archived.is_(False), Filament.id.in_(low))
        )
        return sorted(result.scalars().all(), key=lambda f: (low[f.id], f.id))

    async def snapshot(self, filament: Filament) -> dict:
        """Filament columns plus derived remaining weights and its active spools."""
        return {
            "id": filament.id,
            "name": filament.name,
            "material": filament.material,
            "color_name": filament.color_name,
            "color_hex": filament.color_hex,
            "manufacturer": filament.manufacturer,
            "notes": filament.notes,
            "archived": filament.archived,
            "created_at": filament.created_at,
            "gross_remaining_g": await self.gross_remaining(filament.id),
            "net_remaining_g": await self.net_remaining(filament.id),
            "spools": await self.ledger.list_active(filament.id),
        }

    # ── Writes ───────────────────────────────────────────────────────────────

    async def create(
        self,
        name: str,
        material: str,
        color_name: str | None = None,
        color_hex: str | None = None,
        manufacturer: str | None = None,
        notes: str | None = None,
        starting_weight_g: float | None = None,
        empty_weight_g: float | None = None,
    ) -> Filament:
        """Create a filament, plus its first spool when a starting weight is given."""
        async with locked_transaction(self.db, locks=self.locks):
            filament = Filament(
                name=name,
                material=material,
                color_name=color_name,
                color_hex=color_hex,
                manufacturer=manufacturer,
                notes=notes,
                archived=False,
            )
            self.db.add(filament)
            await self.db.flush()
            if starting_weight_g is not None:
                await self.ledger.create(
                    filament.id,
                    starting_weight_g=starting_weight_g,
                    weight_g=starting_weight_g,
                    empty_weight_g=empty_weight_g,
                )
        logger.info("Created filament %d (%s)", filament.id, filament.name)
        return filament

    async def update(self, filament_id: int, **patch) -> Filament:
        unknown = set(patch) - _FILAMENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown filament fields: {', '.join(sorted(unknown))}")

        async with locked_transaction(self.db, filament_id, locks=self.locks):
            filament = await self.get(filament_id)
            archived = patch.pop("archived", None)
            for field, value in patch.items():
                # name and material are required columns; None means "keep"
                if value is None and field in ("name", "material"):
                    continue
                setattr(filament, field, value)
            if archived is not None:
                await self._set_archived(filament, archived)
            await self.db.flush()
        return filament

    async def archive(self, filament_id: int, archived: bool) -> Filament:
        async with locked_transaction(self.db, filament_id, locks=self.locks):
            filament = await self.get(filament_id)
            await self._set_archived(filament, archived)
        return filament

    async def restock(
        self,
        filament_id: int,
        quantity: int,
        weight_per_spool_g: float,
        empty_weight_g: float | None = None,
    ) -> list[Spool]:
        """Add ``quantity`` full, active spools to a filament."""
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        if weight_per_spool_g <= 0:
            raise ValueError("weight_per_spool_g must be positive")

        async with locked_transaction(self.db, filament_id, locks=self.locks):
            await self.get(filament_id)
            spools = [
                await self.ledger.create(
                    filament_id,
                    starting_weight_g=weight_per_spool_g,
                    weight_g=weight_per_spool_g,
                    empty_weight_g=empty_weight_g,
                )
                for _ in range(quantity)
            ]
        logger.info("Restocked filament %d with %d x %.0fg", filament_id, quantity, weight_per_spool_g)
        return spools

    async def delete(self, filament_id: int, force: bool = False) -> None:
        """Delete a filament with its spools; entries block deletion unless forced."""
        async with locked_transaction(self.db, filament_id, locks=self.locks):
            filament = await self.get(filament_id)
            if not force and await self.has_consumption_entries(filament_id):
                raise InUseError("filament", filament_id, "has consumption entries")
            await self.db.delete(filament)
        logger.info("Deleted filament %d (force=%s)", filament_id, force)

    async def _set_archived(self, filament: Filament, archived: bool) -> None:
        filament.archived = archived
        if archived:
            await self.ledger.archive_all(filament.id, True)
