"""G-code parsing and consumption logging from sliced files."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.routes.filaments import build_filament_response
from backend.app.core.config import settings
from backend.app.core.database import get_db
from backend.app.core.exceptions import InsufficientStockError, NotFoundError
from backend.app.schemas.consumption import ConsumptionKind, ConsumptionResponse
from backend.app.schemas.gcode import GcodeMetadataResponse, GcodeParseResponse, GcodeUploadResponse
from backend.app.services.consumption import ConsumptionAccountant
from backend.app.services.filament_aggregate import FilamentAggregate
from backend.app.utils.gcode_metadata import GcodeMetadata, meters_to_grams, parse_gcode_metadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gcode", tags=["gcode"])


async def _read_gcode(file: UploadFile) -> str:
    if not file.filename:
        raise HTTPException(400, "No filename provided")

    content = await file.read()
    if not content:
        raise HTTPException(400, "Empty file")
    if len(content) > settings.gcode_max_upload_bytes:
        raise HTTPException(413, f"File exceeds {settings.gcode_max_upload_bytes // (1024 * 1024)}MB limit")

    return content.decode("utf-8", errors="replace")


def _parse_or_400(text: str) -> GcodeMetadata:
    result = parse_gcode_metadata(text)
    if not result.success:
        raise HTTPException(400, result.error or "Failed to parse G-code")
    return result.metadata


def _used_grams(metadata: GcodeMetadata) -> float:
    if metadata.used_filament_g:
        return metadata.used_filament_g
    return meters_to_grams(
        metadata.used_filament_m or 0,
        settings.default_filament_diameter_mm,
        settings.default_filament_density,
    )


@router.post("/parse", response_model=GcodeParseResponse)
async def parse_gcode(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
):
    """Read slicer metadata from a G-code file and suggest matching filaments."""
    metadata = _parse_or_400(await _read_gcode(file))

    aggregate = FilamentAggregate(db)
    suggestions = await aggregate.suggest_for(metadata.material_type or "", metadata.color)
    return GcodeParseResponse(
        metadata=GcodeMetadataResponse(**metadata.to_dict()),
        suggested_filaments=[await build_filament_response(aggregate, f) for f in suggestions],
    )


@router.post("/upload", response_model=GcodeUploadResponse, status_code=201)
async def upload_gcode(
    file: UploadFile = File(...),
    filament_id: int = Form(...),
    kind: ConsumptionKind = Form("success"),
    db: AsyncSession = Depends(get_db),
):
    """Parse a G-code file and log its filament usage against a filament."""
    metadata = _parse_or_400(await _read_gcode(file))

    amount_g = round(_used_grams(metadata), 2)
    if amount_g <= 0:
        raise HTTPException(400, "G-code reports no filament usage")

    notes = f"G-code upload from {metadata.slicer or 'unknown slicer'}."
    if metadata.print_time:
        notes += f" Print time: {metadata.print_time}"

    try:
        entry = await ConsumptionAccountant(db).create_entry(
            filament_id,
            amount_g,
            kind=kind,
            amount_m=metadata.used_filament_m,
            print_name=metadata.model_name or file.filename,
            notes=notes,
        )
    except NotFoundError:
        raise HTTPException(404, "Filament not found")
    except InsufficientStockError as e:
        raise HTTPException(400, e.to_detail())

    logger.info("Logged %.2fg from G-code %s against filament %d", amount_g, file.filename, filament_id)
    return GcodeUploadResponse(
        consumption=ConsumptionResponse.model_validate(entry),
        metadata=GcodeMetadataResponse(**metadata.to_dict()),
    )
