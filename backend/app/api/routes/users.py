"""Routes for the current user's emotional status, usage and settings."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_user
from app.api.schemas.user import (
    ApiKeysStatus,
    ApiKeysUpdateRequest,
    EmotionalStatusOut,
    SettingsUpdateRequest,
    TokenUsageOut,
)
from app.db.deps import get_db
from app.db.models.user import User
from app.services.emotional_status import get_emotional_status
from app.services.metering import get_token_usage, usage_breakdown
from app.services.user_service import UserSettings, load_settings, update_api_keys, update_settings

router = APIRouter()


@router.get("/users/me/emotional-status", response_model=EmotionalStatusOut, tags=["users"])
def emotional_status(user: User = Depends(get_user), db: Session = Depends(get_db)) -> EmotionalStatusOut:
    current = get_emotional_status(db, user.id)
    return EmotionalStatusOut(
        emotional_state=current.emotional_state,
        energy_level=current.energy_level,
        brain_clarity=current.brain_clarity,
        total_analyses=current.sample_count,
        scored_analyses=current.scored_analyses,
        last_updated=current.last_updated,
    )


@router.get("/users/me/token-usage", response_model=TokenUsageOut, tags=["users"])
def token_usage(user: User = Depends(get_user)) -> TokenUsageOut:
    return TokenUsageOut(**usage_breakdown(get_token_usage(user)))


@router.get("/users/me/settings", response_model=UserSettings, tags=["users"])
def read_settings(user: User = Depends(get_user)) -> UserSettings:
    return load_settings(user)


@router.put("/users/me/settings", response_model=UserSettings, tags=["users"])
def write_settings(
    payload: SettingsUpdateRequest,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> UserSettings:
    return update_settings(db, user.id, payload.model_dump(exclude_unset=True))


@router.put("/users/me/api-keys", response_model=ApiKeysStatus, tags=["users"])
def write_api_keys(
    payload: ApiKeysUpdateRequest,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> ApiKeysStatus:
    """Store provider keys; the response only says which are set."""
    keys = update_api_keys(db, user.id, payload.model_dump(exclude_unset=True))
    return ApiKeysStatus(openrouter=bool(keys.openrouter), openai=bool(keys.openai))
