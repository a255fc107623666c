"""Schemas for the current user's profile data."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EmotionalStatusOut(BaseModel):
    emotional_state: float
    energy_level: float
    brain_clarity: float
    total_analyses: int
    scored_analyses: int
    last_updated: Optional[datetime]


class TokenUsageOut(BaseModel):
    openai_4om: int
    claude_3h: int
    gemini_25: int
    whisper_units: int
    total_tokens: int


class SettingsUpdateRequest(BaseModel):
    timezone: Optional[str] = None
    selected_model: Optional[str] = None
    task_generation_style: Optional[str] = None
    default_task_minutes: Optional[int] = Field(default=None, ge=1, le=480)


class ApiKeysUpdateRequest(BaseModel):
    openrouter: Optional[str] = None
    openai: Optional[str] = None


class ApiKeysStatus(BaseModel):
    openrouter: bool
    openai: bool
