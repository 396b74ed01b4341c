from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.clock import utcnow
from backend.app.core.database import Base


class Filament(Base):
    """Logical filament (material + color + manufacturer) backed by one or more spools."""

    __tablename__ = "filaments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    material: Mapped[str] = mapped_column(String(50))  # PLA, PETG, ABS, etc.
    color_name: Mapped[str | None] = mapped_column(String(100))  # "Jade White"
    color_hex: Mapped[str | None] = mapped_column(String(7))  # #RRGGBB
    manufacturer: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    spools: Mapped[list["Spool"]] = relationship(
        back_populates="filament", cascade="all, delete-orphan"
    )
    consumption_entries: Mapped[list["ConsumptionEntry"]] = relationship(
        back_populates="filament", cascade="all, delete-orphan"
    )


from backend.app.models.consumption import ConsumptionEntry  # noqa: E402
from backend.app.models.spool import Spool  # noqa: E402
