import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.database import get_db
from backend.app.core.exceptions import InsufficientStockError, NotFoundError
from backend.app.schemas.consumption import (
    ConsumptionCreate,
    ConsumptionKind,
    ConsumptionResponse,
    ConsumptionUpdate,
)
from backend.app.services.consumption import ConsumptionAccountant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consumption", tags=["consumption"])


@router.get("/", response_model=list[ConsumptionResponse])
async def list_consumption(
    filament_id: int | None = None,
    kind: ConsumptionKind | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    db: AsyncSession = Depends(get_db),
):
    """List consumption entries newest first, with optional filters."""
    return await ConsumptionAccountant(db).list_entries(filament_id=filament_id, kind=kind, start=start, end=end)


@router.get("/{entry_id}", response_model=ConsumptionResponse)
async def get_consumption(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single consumption entry."""
    try:
        return await ConsumptionAccountant(db).get_entry(entry_id)
    except NotFoundError:
        raise HTTPException(404, "Consumption entry not found")


@router.post("/", response_model=ConsumptionResponse, status_code=201)
async def create_consumption(
    data: ConsumptionCreate,
    db: AsyncSession = Depends(get_db),
):
    """Log consumption against a filament and deduct it from its spools."""
    try:
        return await ConsumptionAccountant(db).create_entry(**data.model_dump())
    except NotFoundError:
        raise HTTPException(404, "Filament not found")
    except InsufficientStockError as e:
        raise HTTPException(400, e.to_detail())


@router.patch("/{entry_id}", response_model=ConsumptionResponse)
async def update_consumption(
    entry_id: int,
    data: ConsumptionUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a consumption entry and re-balance spool weights."""
    try:
        return await ConsumptionAccountant(db).update_entry(entry_id, **data.model_dump(exclude_unset=True))
    except NotFoundError as e:
        raise HTTPException(404, f"{e.entity.capitalize()} not found")
    except InsufficientStockError as e:
        raise HTTPException(400, e.to_detail())


@router.delete("/{entry_id}", status_code=204)
async def delete_consumption(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Delete a consumption entry and restore its weight."""
    try:
        await ConsumptionAccountant(db).delete_entry(entry_id)
    except NotFoundError:
        raise HTTPException(404, "Consumption entry not found")
