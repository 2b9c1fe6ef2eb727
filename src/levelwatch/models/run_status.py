"""Per-job run metadata used for staleness detection."""

from datetime import datetime

from sqlalchemy import String, DateTime, Float, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from levelwatch.db import Base


class RunStatus(Base):
    __tablename__ = "run_status"

    job_name: Mapped[str] = mapped_column(String(50), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_run_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    last_price: Mapped[float] = mapped_column(Float, nullable=True)
    last_error: Mapped[str] = mapped_column(String(500), nullable=True)
    last_error_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
