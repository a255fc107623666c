"""Request-scoped dependencies shared by the routers."""
from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.auth import AuthUser, get_current_user
from app.core.config import Settings, get_settings
from app.db.deps import get_db
from app.db.models.user import User
from app.services.completion_gateway import CompletionGateway
from app.services.transcription import SpeechTranscriber
from app.services.user_service import get_or_create_user, load_settings


def get_completion_gateway(settings: Settings = Depends(get_settings)) -> CompletionGateway:
    return CompletionGateway(settings)


def get_transcriber(settings: Settings = Depends(get_settings)) -> SpeechTranscriber:
    return SpeechTranscriber(settings)


def get_clock():
    """Callable returning "now" in a given timezone; overridden in tests."""

    def _now(tz: str) -> datetime:
        try:
            zone = ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            zone = ZoneInfo("UTC")
        return datetime.now(zone)

    return _now


def get_user(
    auth: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """The authenticated user's row, created on first sight."""
    return get_or_create_user(db, auth.user_id, auth.email)


def user_now(user: User, clock) -> datetime:
    return clock(load_settings(user).timezone)
