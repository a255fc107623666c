"""Reminder schedule configuration."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, func, text as sa_text

from app.db.base import Base
from app.db.types import JSONBCompat


class ApiReminder(Base):
    __tablename__ = "api_reminders"
    __table_args__ = (Index("ix_api_reminders_user_active", "user_id", "is_active"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    count = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    timeframe = Column(JSONBCompat, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, server_default=sa_text("true"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
