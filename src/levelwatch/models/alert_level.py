"""Alert levels spawned from a published report."""

from datetime import datetime

from sqlalchemy import String, DateTime, Float, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from levelwatch.db import Base


class AlertLevel(Base):
    __tablename__ = "alert_levels"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(Integer, ForeignKey("reports.id"), index=True)
    level_name: Mapped[str] = mapped_column(String(200))
    price: Mapped[float] = mapped_column(Float)
    direction: Mapped[str] = mapped_column(String(10))  # upside | downside
    action: Mapped[str] = mapped_column(String(500), default="")
    reason: Mapped[str] = mapped_column(String(500), default="")
    triggered_at: Mapped[datetime] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    report = relationship("Report", back_populates="levels")

    @property
    def is_pending(self) -> bool:
        return self.triggered_at is None
