"""Audit row for each call made to an upstream AI provider."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text, func

from app.db.base import Base


class ApiRequest(Base):
    __tablename__ = "api_requests"
    __table_args__ = (
        Index("ix_api_requests_user_id", "user_id"),
        Index("ix_api_requests_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(30), nullable=False)
    endpoint = Column(String(100), nullable=False)
    user_id = Column(String(64), nullable=True)
    request_type = Column(String(50), nullable=False)
    model = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    cost = Column(Float, nullable=False, default=0.0)
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
