from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.clock import utcnow
from backend.app.core.database import Base


class Spool(Base):
    """Physical spool of a filament with its own weight ledger."""

    __tablename__ = "spools"
    __table_args__ = (Index("ix_spools_filament_archived", "filament_id", "archived"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    filament_id: Mapped[int] = mapped_column(ForeignKey("filaments.id", ondelete="CASCADE"))
    starting_weight_g: Mapped[float] = mapped_column(Float)  # Gross weight when the spool was added
    empty_weight_g: Mapped[float | None] = mapped_column(Float)  # Tare of the empty spool
    weight_g: Mapped[float] = mapped_column(Float)  # Current gross weight
    archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    filament: Mapped["Filament"] = relationship(back_populates="spools")

    @property
    def net_remaining_g(self) -> float:
        return self.weight_g - (self.empty_weight_g or 0)

    @property
    def is_used(self) -> bool:
        return self.weight_g < self.starting_weight_g

    @property
    def remaining_percent(self) -> float:
        capacity = self.starting_weight_g - (self.empty_weight_g or 0)
        if capacity <= 0:
            return 0.0
        return max(0.0, min(100.0, self.net_remaining_g / capacity * 100))


from backend.app.models.filament import Filament  # noqa: E402
