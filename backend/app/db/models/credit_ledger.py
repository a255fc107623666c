"""Append-only credit ledger entries."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.db.base import Base

LEDGER_ENTRY_TYPES = ("subscription", "purchase", "usage", "renewal", "admin_update")
BALANCE_SUBSCRIPTION = "subscription"
BALANCE_PURCHASED = "purchased"


class CreditLedgerEntry(Base):
    __tablename__ = "credit_ledger_entries"
    __table_args__ = (Index("ix_credit_ledger_entries_user_id", "user_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    entry_type = Column(String(20), nullable=False)
    # Which cached balance on the user this entry moved.
    balance = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    transaction_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="ledger_entries")
