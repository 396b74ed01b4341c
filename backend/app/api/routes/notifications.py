from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.routes.filaments import build_filament_response
from backend.app.core.config import settings
from backend.app.core.database import get_db
from backend.app.schemas.filament import FilamentResponse
from backend.app.services.filament_aggregate import FilamentAggregate

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[FilamentResponse])
async def list_notifications(
    threshold_g: float | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Filaments that need restocking, lowest remaining first.

    Uses the configured ``restock_threshold_g`` unless ``threshold_g`` is given.
    """
    threshold = settings.restock_threshold_g if threshold_g is None else threshold_g
    aggregate = FilamentAggregate(db)
    return [await build_filament_response(aggregate, f) for f in await aggregate.needs_restock(threshold)]
