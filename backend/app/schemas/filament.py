from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.schemas.spool import SpoolResponse


class FilamentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    material: str = Field(..., min_length=1, max_length=50)
    color_name: str | None = Field(None, max_length=100)
    color_hex: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    manufacturer: str | None = Field(None, max_length=255)
    notes: str | None = None


class FilamentCreate(FilamentBase):
    # Optional initial spool
    starting_weight_g: float | None = Field(None, gt=0)
    empty_weight_g: float | None = Field(None, ge=0)


class FilamentUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    material: str | None = Field(None, min_length=1, max_length=50)
    color_name: str | None = Field(None, max_length=100)
    color_hex: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    manufacturer: str | None = Field(None, max_length=255)
    notes: str | None = None
    archived: bool | None = None


class FilamentArchiveRequest(BaseModel):
    archived: bool


class FilamentRestockRequest(BaseModel):
    quantity: int = Field(..., ge=1)
    weight_per_spool_g: float = Field(..., gt=0)
    empty_weight_g: float | None = Field(None, ge=0)


class FilamentResponse(FilamentBase):
    id: int
    archived: bool
    created_at: datetime
    gross_remaining_g: float = 0
    net_remaining_g: float = 0
    spools: list[SpoolResponse] = []

    class Config:
        from_attributes = True
