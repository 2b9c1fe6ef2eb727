"""Append-only record of every notification attempt."""

from datetime import datetime

from sqlalchemy import String, DateTime, Integer, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from levelwatch.db import Base


class NotificationLog(Base):
    __tablename__ = "notification_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Null for system notices such as report announcements
    alert_level_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("alert_levels.id"), nullable=True, index=True
    )
    channel: Mapped[str] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(String(10))  # success | failed
    error_message: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
