"""Completed payment record, unique per external transaction id."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, func

from app.db.base import Base


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("external_id", name="uq_transactions_external_id"),
        Index("ix_transactions_user_id", "user_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(128), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_email = Column(String(320), nullable=True)
    transaction_type = Column(String(20), nullable=False)
    plan = Column(String(20), nullable=True)
    package_size = Column(String(20), nullable=True)
    payment_method = Column(String(20), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    credits_added = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="completed", server_default="completed")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
