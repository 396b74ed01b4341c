from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ConsumptionKind = Literal["success", "failed", "test", "manual"]


class ConsumptionCreate(BaseModel):
    filament_id: int = Field(..., gt=0)
    amount_g: float = Field(..., gt=0)
    amount_m: float | None = Field(None, ge=0)
    kind: ConsumptionKind = "manual"
    print_name: str | None = Field(None, max_length=255)
    notes: str | None = None


class ConsumptionUpdate(BaseModel):
    filament_id: int | None = Field(None, gt=0)
    amount_g: float | None = Field(None, gt=0)
    amount_m: float | None = Field(None, ge=0)
    kind: ConsumptionKind | None = None
    print_name: str | None = Field(None, max_length=255)
    notes: str | None = None


class ConsumptionResponse(BaseModel):
    id: int
    filament_id: int
    amount_g: float
    amount_m: float | None = None
    kind: ConsumptionKind
    print_name: str | None = None
    notes: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True
