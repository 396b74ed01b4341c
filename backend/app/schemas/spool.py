from datetime import datetime

from pydantic import BaseModel, Field


class SpoolBase(BaseModel):
    starting_weight_g: float = Field(..., gt=0)
    empty_weight_g: float | None = Field(None, ge=0)
    weight_g: float = Field(..., ge=0)


class SpoolCreate(SpoolBase):
    filament_id: int = Field(..., gt=0)
    archived: bool = False


class SpoolUpdate(BaseModel):
    starting_weight_g: float | None = Field(None, gt=0)
    empty_weight_g: float | None = Field(None, ge=0)
    weight_g: float | None = Field(None, ge=0)
    archived: bool | None = None


class SpoolArchiveRequest(BaseModel):
    archived: bool


class SpoolResponse(SpoolBase):
    id: int
    filament_id: int
    archived: bool
    net_remaining_g: float
    remaining_percent: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
