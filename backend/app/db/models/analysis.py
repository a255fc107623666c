"""Analysis ORM model: one scored brain dump and its task list."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.types import new_id


class Analysis(Base):
    __tablename__ = "analyses"
    __table_args__ = (Index("ix_analyses_user_id", "user_id"),)

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    transcript = Column(Text, nullable=False)
    emotional_state = Column(Integer, nullable=True)
    energy_level = Column(Integer, nullable=True)
    brain_clarity = Column(Integer, nullable=True)
    summary_text = Column(Text, nullable=True)
    title_text = Column(String(200), nullable=True)
    reasoning = Column(Text, nullable=True)
    completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="analyses")
    tasks = relationship(
        "Task",
        back_populates="analysis",
        cascade="all, delete-orphan",
        order_by="Task.created_at",
    )
