from backend.app.models.filament import Filament
from backend.app.models.spool import Spool
from backend.app.models.consumption import ConsumptionEntry

__all__ = [
    "Filament",
    "Spool",
    "ConsumptionEntry",
]
