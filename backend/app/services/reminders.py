"""Reminder time-window spacing and reminder configuration persistence."""
from __future__ import annotations

import logging
import math
import re
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationError
from app.db.models.api_reminder import ApiReminder

logger = logging.getLogger(__name__)

_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_clock(value: str, field: str = "time") -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    match = _CLOCK_RE.match((value or "").strip())
    if not match:
        raise ValidationError(field, "must be HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock(minutes: float) -> str:
    hour = int(minutes // 60)
    minute = math.floor(minutes % 60 + 0.5)
    if minute == 60:
        hour, minute = hour + 1, 0
    return f"{hour:02d}:{minute:02d}"


def compute_timeframe(count: int, start_time: str, end_time: str) -> List[str]:
    """Evenly spaced clock times across the inclusive window."""
    if count <= 0:
        return []
    start = parse_clock(start_time, "start_time")
    if count == 1:
        return [format_clock(start)]
    end = parse_clock(end_time, "end_time")
    interval = (end - start) / (count - 1)
    return [format_clock(start + interval * index) for index in range(count)]


def create_reminder(
    db: Session,
    user_id: str,
    *,
    count: int,
    name: str,
    start_time: str,
    end_time: str,
) -> ApiReminder:
    """Deactivate the user's active reminders, then create the new active one.

    The two steps commit separately; a racing creator can leave two active rows,
    and readers then take the most recently created.
    """
    if count is None or count < 0:
        raise ValidationError("number_reminders", "must be zero or more")
    if not name or not name.strip():
        raise ValidationError("reminder_name")
    timeframe = compute_timeframe(count, start_time, end_time)
    parse_clock(end_time, "end_time")

    deactivated = (
        db.query(ApiReminder)
        .filter(ApiReminder.user_id == user_id, ApiReminder.is_active.is_(True))
        .update({ApiReminder.is_active: False}, synchronize_session=False)
    )
    db.commit()
    if deactivated:
        logger.info("Deactivated %s reminder(s) for user=%s", deactivated, user_id)

    reminder = ApiReminder(
        user_id=user_id,
        name=name.strip(),
        count=count,
        start_time=start_time.strip(),
        end_time=end_time.strip(),
        timeframe=timeframe,
        is_active=True,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def list_active_reminders(db: Session, user_id: str) -> List[ApiReminder]:
    return (
        db.query(ApiReminder)
        .filter(ApiReminder.user_id == user_id, ApiReminder.is_active.is_(True))
        .order_by(ApiReminder.created_at.desc(), ApiReminder.id.desc())
        .all()
    )


def current_reminder(db: Session, user_id: str) -> Optional[ApiReminder]:
    reminders = list_active_reminders(db, user_id)
    return reminders[0] if reminders else None


def delete_reminder(db: Session, user_id: str, reminder_id: int) -> None:
    reminder = (
        db.query(ApiReminder)
        .filter(ApiReminder.id == reminder_id, ApiReminder.user_id == user_id)
        .one_or_none()
    )
    if reminder is None:
        raise NotFound("Reminder", str(reminder_id))
    db.delete(reminder)
    db.commit()
