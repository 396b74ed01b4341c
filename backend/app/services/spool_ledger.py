"""Spool records and their weight ledger.

The ledger only flushes; committing is the caller's job (normally via
``locked_transaction``) so that one logical operation lands atomically.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import NotFoundError
from backend.app.models.spool import Spool

logger = logging.getLogger(__name__)

_PATCHABLE_FIELDS = {"starting_weight_g", "empty_weight_g", "weight_g", "archived"}


class SpoolLedger:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, spool_id: int) -> Spool:
        # Refresh an already-loaded instance; weights may have moved under another session
        result = await self.db.execute(
            select(Spool).where(Spool.id == spool_id).execution_options(populate_existing=True)
        )
        spool = result.scalar_one_or_none()
        if not spool:
            raise NotFoundError("spool", spool_id)
        return spool

    async def create(
        self,
        filament_id: int,
        starting_weight_g: float,
        weight_g: float,
        empty_weight_g: float | None = None,
        archived: bool = False,
    ) -> Spool:
        now = utcnow()
        spool = Spool(
            filament_id=filament_id,
            starting_weight_g=starting_weight_g,
            empty_weight_g=empty_weight_g,
            weight_g=weight_g,
            archived=archived,
            created_at=now,
            updated_at=now,
        )
        self.db.add(spool)
        await self.db.flush()
        return spool

    async def update(self, spool: Spool | int, **patch) -> Spool:
        """Apply a patch to a spool.

        ``None`` for ``starting_weight_g``, ``weight_g`` or ``archived`` means
        "not supplied"; ``empty_weight_g=None`` clears the tare.

        Unless ``archived`` is supplied, a spool whose net remaining weight
        drops to zero or below is archived. The ledger never un-archives on
        its own; an explicit ``archived`` always wins.
        """
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown spool fields: {', '.join(sorted(unknown))}")

        if isinstance(spool, int):
            spool = await self.get(spool)

        if patch.get("starting_weight_g") is not None:
            spool.starting_weight_g = patch["starting_weight_g"]
        if "empty_weight_g" in patch:
            spool.empty_weight_g = patch["empty_weight_g"]
        if patch.get("weight_g") is not None:
            spool.weight_g = patch["weight_g"]

        archived = patch.get("archived")
        if archived is not None:
            spool.archived = archived
        elif not spool.archived and spool.net_remaining_g <= 0:
            spool.archived = True
            logger.info(
                "Auto-archived spool %d of filament %d (net remaining %.2fg)",
                spool.id,
                spool.filament_id,
                spool.net_remaining_g,
            )

        spool.updated_at = utcnow()
        await self.db.flush()
        return spool

    async def archive(self, spool_id: int, archived: bool) -> Spool:
        return await self.update(spool_id, archived=archived)

    async def archive_all(self, filament_id: int, archived: bool) -> int:
        """Set ``archived`` on every spool of a filament, ignoring remaining weight."""
        result = await self.db.execute(
            update(Spool).where(Spool.filament_id == filament_id).values(archived=archived, updated_at=utcnow())
        )
        logger.info("Set archived=%s on %d spool(s) of filament %d", archived, result.rowcount, filament_id)
        return result.rowcount

    async def delete(self, spool_id: int) -> None:
        spool = await self.get(spool_id)
        await self.db.delete(spool)
        await self.db.flush()

    async def list_active(self, filament_id: int) -> list[Spool]:
        return await self.list_spools(filament_id=filament_id)

    async def list_all(self, filament_id: int) -> list[Spool]:
        return await self.list_spools(filament_id=filament_id, include_archived=True)

    async def list_spools(self, filament_id: int | None = None, include_archived: bool = False) -> list[Spool]:
        """List spools newest first, excluding archived by default."""
        query = select(Spool)
        if filament_id is not None:
            query = query.where(Spool.filament_id == filament_id)
        if not include_archived:
            query = query.where(Spool.archived.is_(False))
        query = query.order_by(Spool.created_at.desc(), Spool.id.desc()).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())
