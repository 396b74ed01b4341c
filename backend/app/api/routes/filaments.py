from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.database import get_db
from backend.app.core.exceptions import InUseError, NotFoundError
from backend.app.models.filament import Filament
from backend.app.schemas.filament import (
    FilamentArchiveRequest,
    FilamentCreate,
    FilamentResponse,
    FilamentRestockRequest,
    FilamentUpdate,
)
from backend.app.schemas.spool import SpoolResponse
from backend.app.services.filament_aggregate import FilamentAggregate

router = APIRouter(prefix="/filaments", tags=["filaments"])


async def build_filament_response(aggregate: FilamentAggregate, filament: Filament) -> FilamentResponse:
    """Filament with its derived remaining weights and active spools."""
    # Not model_validate(filament): that would lazy-load ``spools``
    data = await aggregate.snapshot(filament)
    data["spools"] = [SpoolResponse.model_validate(s) for s in data["spools"]]
    return FilamentResponse(**data)


async def _get_or_404(aggregate: FilamentAggregate, filament_id: int) -> Filament:
    try:
        return await aggregate.get(filament_id)
    except NotFoundError:
        raise HTTPException(404, "Filament not found")


@router.get("/", response_model=list[FilamentResponse])
async def list_filaments(
    include_archived: bool = False,
    db: AsyncSession = Depends(get_db),
):
    """List filaments, excluding archived by default."""
    aggregate = FilamentAggregate(db)
    return [await build_filament_response(aggregate, f) for f in await aggregate.list_filaments(include_archived)]


@router.post("/", response_model=FilamentResponse, status_code=201)
async def create_filament(
    filament_data: FilamentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a filament, optionally with its first spool."""
    aggregate = FilamentAggregate(db)
    filament = await aggregate.create(**filament_data.model_dump())
    return await build_filament_response(aggregate, filament)


@router.get("/{filament_id}", response_model=FilamentResponse)
async def get_filament(
    filament_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a filament with remaining weights and active spools."""
    aggregate = FilamentAggregate(db)
    filament = await _get_or_404(aggregate, filament_id)
    return await build_filament_response(aggregate, filament)


@router.patch("/{filament_id}", response_model=FilamentResponse)
async def update_filament(
    filament_id: int,
    filament_data: FilamentUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a filament. Archiving cascades to all of its spools."""
    aggregate = FilamentAggregate(db)
    await _get_or_404(aggregate, filament_id)
    filament = await aggregate.update(filament_id, **filament_data.model_dump(exclude_unset=True))
    return await build_filament_response(aggregate, filament)


@router.delete("/{filament_id}", status_code=204)
async def delete_filament(
    filament_id: int,
    force: bool = False,
    db: AsyncSession = Depends(get_db),
):
    """Delete a filament and its spools. Requires force=true if it has consumption entries."""
    aggregate = FilamentAggregate(db)
    await _get_or_404(aggregate, filament_id)
    try:
        await aggregate.delete(filament_id, force=force)
    except InUseError:
        raise HTTPException(
            409,
            {"error": "Filament has consumption entries. Use force=true to delete.", "has_entries": True},
        )


@router.patch("/{filament_id}/archive", response_model=FilamentResponse)
async def archive_filament(
    filament_id: int,
    data: FilamentArchiveRequest,
    db: AsyncSession = Depends(get_db),
):
    """Archive or unarchive a filament."""
    aggregate = FilamentAggregate(db)
    await _get_or_404(aggregate, filament_id)
    filament = await aggregate.archive(filament_id, data.archived)
    return await build_filament_response(aggregate, filament)


@router.post("/{filament_id}/restock", response_model=FilamentResponse)
async def restock_filament(
    filament_id: int,
    data: FilamentRestockRequest,
    db: AsyncSession = Depends(get_db),
):
    """Add one or more full spools to a filament."""
    aggregate = FilamentAggregate(db)
    filament = await _get_or_404(aggregate, filament_id)
    await aggregate.restock(filament_id, data.quantity, data.weight_per_spool_g, data.empty_weight_g)
    return await build_filament_response(aggregate, filament)
