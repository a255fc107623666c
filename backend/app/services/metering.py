"""Token and audio usage accounting, cost estimation and the API request audit log."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.db.models.api_request import ApiRequest
from app.db.models.transaction import Transaction
from app.db.models.user import User
from app.db.unit_of_work import run_atomic, touch
from app.services.model_catalog import PRICING, WHISPER_COST_PER_SECOND, usage_counter_for

logger = logging.getLogger(__name__)

INPUT_SHARE = 0.7
OUTPUT_SHARE = 0.3
UNITS_PER_MINUTE = 1000
WHISPER_MODEL = "whisper-1"


@dataclass
class TokenUsage:
    openai_4om: int
    claude_3h: int
    gemini_25: int
    whisper_units: int

    @property
    def total_llm_tokens(self) -> int:
        return self.openai_4om + self.claude_3h + self.gemini_25


def estimate_cost(
    model: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    total_tokens: int = 0,
) -> float:
    """Dollar cost of one completion.

    When only a combined count is known it is apportioned 70% input / 30% output
    before pricing. Unknown models cost nothing.
    """
    pricing = PRICING.get(model)
    if pricing is None:
        return 0.0
    if not input_tokens and not output_tokens and total_tokens:
        input_tokens = math.floor(total_tokens * INPUT_SHARE)
        output_tokens = math.floor(total_tokens * OUTPUT_SHARE)
    cost = (input_tokens / 1_000_000) * pricing.input_per_million + (output_tokens / 1_000_000) * pricing.output_per_million
    return round(cost, 6)


def audio_units(duration_seconds: float) -> int:
    """1000 units per minute of audio, rounded up."""
    if duration_seconds <= 0:
        return 0
    return math.ceil(duration_seconds / 60 * UNITS_PER_MINUTE)


def estimate_audio_cost(duration_seconds: float) -> float:
    return round(math.ceil(max(duration_seconds, 0)) * WHISPER_COST_PER_SECOND, 6)


def apply_usage(user: User, model: str, amount: int) -> bool:
    """Increment the per-model counter on an already loaded user. Returns False for unknown models."""
    counter = usage_counter_for(model)
    if counter is None:
        logger.warning("No usage counter for model %s; usage of %s not recorded", model, amount)
        return False
    if amount <= 0:
        return True
    setattr(user, counter, (getattr(user, counter) or 0) + int(amount))
    return True


def record_usage(db: Session, user_id: str, model: str, tokens: int) -> None:
    def _apply(session: Session) -> None:
        user = session.get(User, user_id)
        if user is None:
            logger.warning("Usage for unknown user %s dropped", user_id)
            return
        if apply_usage(user, model, tokens):
            touch(user)

    run_atomic(db, _apply)


def record_audio_usage(db: Session, user_id: str, duration_seconds: float) -> int:
    units = audio_units(duration_seconds)
    record_usage(db, user_id, WHISPER_MODEL, units)
    return units


def get_token_usage(user: User) -> TokenUsage:
    return TokenUsage(
        openai_4om=user.tokens_openai_4om or 0,
        claude_3h=user.tokens_claude_3h or 0,
        gemini_25=user.tokens_gemini_25 or 0,
        whisper_units=user.whisper_units or 0,
    )


def log_api_request(
    db: Session,
    *,
    user_id: Optional[str],
    request_type: str,
    model: Optional[str],
    status: str,
    tokens_used: int = 0,
    cost: float = 0.0,
    response_time_ms: Optional[int] = None,
    error_message: Optional[str] = None,
    provider: str = "openrouter",
    endpoint: str = "/chat/completions",
) -> None:
    """Persist an audit row; failures here are logged and never break the caller."""
    entry = ApiRequest(
        provider=provider,
        endpoint=endpoint,
        user_id=user_id,
        request_type=request_type,
        model=model,
        status=status,
        tokens_used=tokens_used,
        cost=cost,
        response_time_ms=response_time_ms,
        error_message=error_message[:1000] if error_message else None,
    )
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to record API request audit row")


def usage_breakdown(usage: TokenUsage) -> Dict[str, int]:
    return {
        "openai_4om": usage.openai_4om,
        "claude_3h": usage.claude_3h,
        "gemini_25": usage.gemini_25,
        "whisper_units": usage.whisper_units,
        "total_tokens": usage.total_llm_tokens,
    }


def usage_statistics(db: Session) -> Dict[str, Any]:
    """Provider calls grouped by model and completed payments grouped by type."""
    failures = func.sum(case((ApiRequest.status != "success", 1), else_=0))
    model_rows = (
        db.query(
            ApiRequest.model,
            func.count(ApiRequest.id),
            failures,
            func.coalesce(func.sum(ApiRequest.tokens_used), 0),
            func.coalesce(func.sum(ApiRequest.cost), 0.0),
        )
        .group_by(ApiRequest.model)
        .order_by(func.count(ApiRequest.id).desc())
        .all()
    )
    revenue_rows = (
        db.query(
            Transaction.transaction_type,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.amount), 0),
            func.coalesce(func.sum(Transaction.credits_added), 0),
        )
        .filter(Transaction.status == "completed")
        .group_by(Transaction.transaction_type)
        .all()
    )

    models = [
        {
            "model": model,
            "requests": int(count),
            "failures": int(failed or 0),
            "tokens": int(tokens),
            "cost": round(float(cost), 6),
        }
        for model, count, failed, tokens, cost in model_rows
    ]
    revenue = [
        {
            "transaction_type": kind,
            "count": int(count),
            "amount": round(float(amount), 2),
            "credits": int(credits),
        }
        for kind, count, amount, credits in revenue_rows
    ]
    return {
        "total_requests": sum(row["requests"] for row in models),
        "models": models,
        "revenue": revenue,
        "totals": {
            "cost": round(sum(row["cost"] for row in models), 6),
            "tokens": float(sum(row["tokens"] for row in models)),
            "revenue": round(sum(row["amount"] for row in revenue), 2),
        },
    }
