"""Rolling averages of a user's emotional scores, recomputed lazily."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.db.models.analysis import Analysis
from app.db.models.user import User
from app.db.unit_of_work import run_atomic, touch

NEUTRAL_SCORE = 5.0


@dataclass
class EmotionalStatus:
    emotional_state: float
    energy_level: float
    brain_clarity: float
    sample_count: int
    scored_analyses: int
    last_updated: Optional[datetime]


def get_emotional_status(db: Session, user_id: str) -> EmotionalStatus:
    """Cached averages, refreshed first when the number of analyses has changed."""
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    analysis_count = db.query(func.count(Analysis.id)).filter(Analysis.user_id == user_id).scalar() or 0
    if user.emotional_sample_count != analysis_count or user.emotional_updated_at is None:
        return refresh_emotional_status(db, user_id)
    return _status_from(user, _scored_count(db, user_id))


def refresh_emotional_status(db: Session, user_id: str) -> EmotionalStatus:
    def _apply(session: Session) -> EmotionalStatus:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User", user_id)
        analyses = session.query(Analysis).filter(Analysis.user_id == user_id).all()
        scored = [
            analysis
            for analysis in analyses
            if analysis.emotional_state is not None
            and analysis.energy_level is not None
            and analysis.brain_clarity is not None
        ]
        if scored:
            user.emotional_state_avg = _average([a.emotional_state for a in scored])
            user.energy_level_avg = _average([a.energy_level for a in scored])
            user.brain_clarity_avg = _average([a.brain_clarity for a in scored])
        else:
            user.emotional_state_avg = NEUTRAL_SCORE
            user.energy_level_avg = NEUTRAL_SCORE
            user.brain_clarity_avg = NEUTRAL_SCORE
        user.emotional_sample_count = len(analyses)
        user.emotional_updated_at = datetime.now(timezone.utc)
        touch(user)
        return _status_from(user, len(scored))

    return run_atomic(db, _apply)


def _status_from(user: User, scored: int) -> EmotionalStatus:
    return EmotionalStatus(
        emotional_state=user.emotional_state_avg,
        energy_level=user.energy_level_avg,
        brain_clarity=user.brain_clarity_avg,
        sample_count=user.emotional_sample_count,
        scored_analyses=scored,
        last_updated=user.emotional_updated_at,
    )


def _scored_count(db: Session, user_id: str) -> int:
    return (
        db.query(func.count(Analysis.id))
        .filter(
            Analysis.user_id == user_id,
            Analysis.emotional_state.isnot(None),
            Analysis.energy_level.isnot(None),
            Analysis.brain_clarity.isnot(None),
        )
        .scalar()
        or 0
    )


def _average(values) -> float:
    return round(sum(values) / len(values), 1)
