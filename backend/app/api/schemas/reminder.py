"""Schemas for reminder configuration."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ReminderCreateRequest(BaseModel):
    number_reminders: int = Field(ge=0, le=48)
    reminder_name: str
    start_time: str
    end_time: str


class ReminderOut(BaseModel):
    id: int
    name: str
    count: int
    start_time: str
    end_time: str
    timeframe: List[str]
    is_active: bool
    created_at: Optional[datetime]
