"""Reminder configuration routes."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_user
from app.api.schemas.reminder import ReminderCreateRequest, ReminderOut
from app.db.deps import get_db
from app.db.models.api_reminder import ApiReminder
from app.db.models.user import User
from app.observability.metrics import log_metric
from app.services import reminders

router = APIRouter()


@router.get("/reminders", response_model=List[ReminderOut], tags=["reminders"])
def list_reminders(user: User = Depends(get_user), db: Session = Depends(get_db)) -> List[ReminderOut]:
    """Active reminders, most recent first."""
    return [_serialize(reminder) for reminder in reminders.list_active_reminders(db, user.id)]


@router.post("/reminders", response_model=ReminderOut, status_code=status.HTTP_201_CREATED, tags=["reminders"])
def create_reminder(
    payload: ReminderCreateRequest,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> ReminderOut:
    reminder = reminders.create_reminder(
        db,
        user.id,
        count=payload.number_reminders,
        name=payload.reminder_name,
        start_time=payload.start_time,
        end_time=payload.end_time,
    )
    log_metric("reminders.created", 1, metadata={"count": reminder.count})
    return _serialize(reminder)


@router.delete("/reminders/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["reminders"])
def delete_reminder(reminder_id: int, user: User = Depends(get_user), db: Session = Depends(get_db)) -> Response:
    reminders.delete_reminder(db, user.id, reminder_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _serialize(reminder: ApiReminder) -> ReminderOut:
    return ReminderOut(
        id=reminder.id,
        name=reminder.name,
        count=reminder.count,
        start_time=reminder.start_time,
        end_time=reminder.end_time,
        timeframe=list(reminder.timeframe or []),
        is_active=bool(reminder.is_active),
        created_at=reminder.created_at,
    )
