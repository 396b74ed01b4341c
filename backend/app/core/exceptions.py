"""Error types raised by the weight-accounting services.

Routes translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""


class InventoryError(Exception):
    """Base exception for inventory errors."""

    code = "inventory_error"


class NotFoundError(InventoryError):
    """A filament, spool or consumption entry does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found")


class InUseError(InventoryError):
    """The record is still referenced and cannot be removed."""

    code = "in_use"

    def __init__(self, entity: str, entity_id: int, reason: str):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity.capitalize()} {entity_id} is in use: {reason}")


class InsufficientStockError(InventoryError):
    """A deduction asked for more material than the filament's active spools hold."""

    code = "insufficient_stock"

    def __init__(self, filament_id: int, requested: float, available: float):
        self.filament_id = filament_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient filament remaining for filament {filament_id}: "
            f"requested {requested:.2f}g, available {available:.2f}g"
        )

    def to_detail(self) -> dict:
        return {
            "error": "Insufficient filament remaining",
            "filament_id": self.filament_id,
            "requested": self.requested,
            "remaining": self.available,
        }
