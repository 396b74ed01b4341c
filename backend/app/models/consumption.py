from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.clock import utcnow
from backend.app.core.database import Base

CONSUMPTION_KINDS = ("success", "failed", "test", "manual")


class ConsumptionEntry(Base):
    """Recorded usage of a filament; distributed across its spools by the accountant."""

    __tablename__ = "consumption_entries"
    __table_args__ = (
        CheckConstraint("kind IN ('success', 'failed', 'test', 'manual')", name="ck_consumption_kind"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    filament_id: Mapped[int] = mapped_column(ForeignKey("filaments.id", ondelete="CASCADE"), index=True)
    amount_g: Mapped[float] = mapped_column(Float)
    amount_m: Mapped[float | None] = mapped_column(Float)
    kind: Mapped[str] = mapped_column(String(20), default="manual")  # success/failed/test/manual
    print_name: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    filament: Mapped["Filament"] = relationship(back_populates="consumption_entries")


from backend.app.models.filament import Filament  # noqa: E402
