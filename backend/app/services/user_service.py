"""Helpers for working with users and their versioned settings."""
from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import NotFound, ValidationError
from app.db.models.user import User
from app.db.unit_of_work import run_atomic, touch
from app.services.model_catalog import MODEL_CHOICES

logger = logging.getLogger(__name__)

SETTINGS_VERSION = 2


class UserSettings(BaseModel):
    settings_version: int = SETTINGS_VERSION
    timezone: str = "America/New_York"
    selected_model: Optional[str] = None
    task_generation_style: str = "balanced"
    default_task_minutes: int = Field(default=15, ge=1, le=480)


class UserApiKeys(BaseModel):
    openrouter: Optional[str] = None
    openai: Optional[str] = None


def get_or_create_user(db: Session, user_id: str, email: Optional[str] = None) -> User:
    """Fetch an existing user or create a new row safely."""
    user = db.get(User, user_id)
    if user:
        changed = False
        if email and user.email != email:
            user.email = email
            changed = True
        stored = user.settings_json
        if stored is not None and not (isinstance(stored, dict) and stored.get("settings_version") == SETTINGS_VERSION):
            user.settings_json = migrate_settings(stored).model_dump()
            changed = True
        if changed:
            touch(user)
            db.commit()
        return user

    user = User(id=user_id, email=email)
    db.add(user)
    try:
        db.commit()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise


def migrate_settings(raw: Any) -> UserSettings:
    """Read any stored settings shape into the current struct.

    Older rows hold either a list of ``{"key": ..., "value": ...}`` pairs or a flat
    camelCase dict.
    """
    if isinstance(raw, list):
        raw = {item.get("key"): item.get("value") for item in raw if isinstance(item, dict) and item.get("key")}
    if not isinstance(raw, dict):
        return UserSettings()
    if raw.get("settings_version") == SETTINGS_VERSION:
        return UserSettings.model_validate(raw)

    preferences = raw.get("aiPreferences") if isinstance(raw.get("aiPreferences"), dict) else {}
    candidate = {
        "timezone": raw.get("timezone"),
        "selected_model": raw.get("selectedModel") or raw.get("selected_model") or preferences.get("selectedModel"),
        "task_generation_style": raw.get("taskGenerationStyle") or preferences.get("taskGenerationStyle"),
        "default_task_minutes": raw.get("defaultTaskDuration"),
    }
    try:
        return UserSettings.model_validate({key: value for key, value in candidate.items() if value is not None})
    except ValueError:
        logger.warning("Discarding unreadable legacy settings: %r", raw)
        return UserSettings()


def load_settings(user: User) -> UserSettings:
    return migrate_settings(user.settings_json)


def load_api_keys(user: User) -> UserApiKeys:
    raw = user.api_keys_json
    if isinstance(raw, dict):
        return UserApiKeys(
            openrouter=raw.get("openrouter") or raw.get("openRouter"),
            openai=raw.get("openai") or raw.get("openAI"),
        )
    return UserApiKeys()


def update_settings(db: Session, user_id: str, changes: dict) -> UserSettings:
    model = changes.get("selected_model")
    if model is not None and model not in MODEL_CHOICES:
        raise ValidationError("selected_model", f"must be one of {', '.join(MODEL_CHOICES)}")

    def _apply(session: Session) -> UserSettings:
        user = _load_user(session, user_id)
        merged = load_settings(user).model_copy(update=changes)
        current = UserSettings.model_validate(merged.model_dump())
        user.settings_json = current.model_dump()
        touch(user)
        return current

    return run_atomic(db, _apply)


def update_api_keys(db: Session, user_id: str, changes: dict) -> UserApiKeys:
    def _apply(session: Session) -> UserApiKeys:
        user = _load_user(session, user_id)
        keys = load_api_keys(user).model_copy(update={k: (v or None) for k, v in changes.items()})
        user.api_keys_json = keys.model_dump()
        touch(user)
        return keys

    return run_atomic(db, _apply)


def _load_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user
