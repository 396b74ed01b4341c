from pydantic import BaseModel

from backend.app.schemas.consumption import ConsumptionResponse
from backend.app.schemas.filament import FilamentResponse


class GcodeMetadataResponse(BaseModel):
    slicer: str | None = None
    material_type: str | None = None
    color: str | None = None
    used_filament_g: float | None = None
    used_filament_m: float | None = None
    print_time: str | None = None
    model_name: str | None = None


class GcodeParseResponse(BaseModel):
    metadata: GcodeMetadataResponse
    suggested_filaments: list[FilamentResponse] = []


class GcodeUploadResponse(BaseModel):
    consumption: ConsumptionResponse
    metadata: GcodeMetadataResponse
