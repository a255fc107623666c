"""Subtask ORM model; addressed by its ordinal inside the parent task."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text, text as sa_text
from sqlalchemy.orm import relationship

from app.db.base import Base

DEFAULT_ESTIMATED_MINUTES = 10


class Subtask(Base):
    __tablename__ = "subtasks"
    __table_args__ = (Index("ix_subtasks_task_id", "task_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(String(32), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    ordinal = Column(Integer, nullable=False)
    title = Column(Text, nullable=False)
    estimated_minutes = Column(Integer, nullable=False, default=DEFAULT_ESTIMATED_MINUTES)
    completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))

    task = relationship("Task", back_populates="subtasks")
