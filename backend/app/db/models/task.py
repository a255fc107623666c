"""Task ORM model."""
from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.types import new_id

TASK_PRIORITIES = ("low", "medium", "high")
TASK_STATUSES = ("pending", "completed", "postponed")


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_id", "user_id"),
        Index("ix_tasks_analysis_id", "analysis_id"),
        Index("ix_tasks_status", "status"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    analysis_id = Column(String(32), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(String(10), nullable=False, default="medium", server_default="medium")
    status = Column(String(20), nullable=False, default="pending", server_default="pending")
    position = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    due_date = Column(Date, nullable=True)
    scheduled_date = Column(Date, nullable=True)
    # 24-hour HH:MM
    scheduled_time = Column(String(5), nullable=True)
    postponed_until = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    analysis = relationship("Analysis", back_populates="tasks")
    subtasks = relationship(
        "Subtask",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Subtask.ordinal",
        collection_class=ordering_list("ordinal"),
    )
