from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.database import get_db
from backend.app.core.exceptions import NotFoundError
from backend.app.models.filament import Filament
from backend.app.models.spool import Spool
from backend.app.schemas.spool import SpoolArchiveRequest, SpoolCreate, SpoolResponse, SpoolUpdate
from backend.app.services.filament_locks import locked_transaction
from backend.app.services.spool_ledger import SpoolLedger

router = APIRouter(prefix="/spools", tags=["spools"])


async def _get_or_404(ledger: SpoolLedger, spool_id: int) -> Spool:
    try:
        return await ledger.get(spool_id)
    except NotFoundError:
        raise HTTPException(404, "Spool not found")


@router.get("/", response_model=list[SpoolResponse])
async def list_spools(
    filament_id: int | None = None,
    include_archived: bool = False,
    db: AsyncSession = Depends(get_db),
):
    """List spools newest first, excluding archived by default."""
    return await SpoolLedger(db).list_spools(filament_id=filament_id, include_archived=include_archived)


@router.get("/{spool_id}", response_model=SpoolResponse)
async def get_spool(
    spool_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single spool."""
    return await _get_or_404(SpoolLedger(db), spool_id)


@router.post("/", response_model=SpoolResponse, status_code=201)
async def create_spool(
    spool_data: SpoolCreate,
    db: AsyncSession = Depends(get_db),
):
    """Add a spool to a filament."""
    if not await db.get(Filament, spool_data.filament_id):
        raise HTTPException(404, "Filament not found")

    ledger = SpoolLedger(db)
    async with locked_transaction(db, spool_data.filament_id):
        spool = await ledger.create(**spool_data.model_dump())
    return spool


@router.patch("/{spool_id}", response_model=SpoolResponse)
async def update_spool(
    spool_id: int,
    spool_data: SpoolUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a spool's weights or archive flag.

    Without an explicit ``archived`` value, a spool whose net remaining
    weight reaches zero is archived automatically.
    """
    ledger = SpoolLedger(db)
    spool = await _get_or_404(ledger, spool_id)
    try:
        async with locked_transaction(db, spool.filament_id):
            # Re-read under the lock; the auto-archive check needs current weights
            spool = await ledger.update(spool_id, **spool_data.model_dump(exclude_unset=True))
    except NotFoundError:
        raise HTTPException(404, "Spool not found")
    return spool


@router.patch("/{spool_id}/archive", response_model=SpoolResponse)
async def archive_spool(
    spool_id: int,
    data: SpoolArchiveRequest,
    db: AsyncSession = Depends(get_db),
):
    """Archive or unarchive a spool."""
    ledger = SpoolLedger(db)
    spool = await _get_or_404(ledger, spool_id)
    try:
        async with locked_transaction(db, spool.filament_id):
            spool = await ledger.archive(spool_id, data.archived)
    except NotFoundError:
        raise HTTPException(404, "Spool not found")
    return spool


@router.delete("/{spool_id}", status_code=204)
async def delete_spool(
    spool_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Hard delete a spool."""
    ledger = SpoolLedger(db)
    spool = await _get_or_404(ledger, spool_id)
    try:
        async with locked_transaction(db, spool.filament_id):
            await ledger.delete(spool_id)
    except NotFoundError:
        raise HTTPException(404, "Spool not found")
