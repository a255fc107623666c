"""User ORM model: the aggregate root for analyses, counters and credits."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, func, text as sa_text
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.types import JSONBCompat


class User(Base):
    __tablename__ = "users"

    # Opaque identifier issued by the identity provider.
    id = Column(String(64), primary_key=True)
    email = Column(String(320), nullable=True)
    version_id = Column(Integer, nullable=False, default=1)

    completed_tasks = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))

    tokens_openai_4om = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    tokens_claude_3h = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    tokens_gemini_25 = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    whisper_units = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))

    subscription_credits = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    purchased_credits = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))

    subscription_active = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    subscription_plan = Column(String(20), nullable=False, default="free", server_default="free")
    subscription_start = Column(DateTime(timezone=True), nullable=True)
    subscription_end = Column(DateTime(timezone=True), nullable=True)
    subscription_auto_renew = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))

    emotional_state_avg = Column(Float, nullable=False, default=5.0, server_default=sa_text("5"))
    energy_level_avg = Column(Float, nullable=False, default=5.0, server_default=sa_text("5"))
    brain_clarity_avg = Column(Float, nullable=False, default=5.0, server_default=sa_text("5"))
    emotional_sample_count = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    emotional_updated_at = Column(DateTime(timezone=True), nullable=True)

    settings_json = Column("settings", JSONBCompat, nullable=True)
    api_keys_json = Column("api_keys", JSONBCompat, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    analyses = relationship(
        "Analysis",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Analysis.created_at",
    )
    ledger_entries = relationship(
        "CreditLedgerEntry",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="CreditLedgerEntry.id",
    )

    __mapper_args__ = {"version_id_col": version_id}
