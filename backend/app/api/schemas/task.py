"""Schemas for tasks, subtasks and task generation."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Priority = Literal["low", "medium", "high"]
TaskStatus = Literal["pending", "completed", "postponed"]


class SubtaskOut(BaseModel):
    index: int
    title: str
    estimated_minutes: int
    completed: bool


class TaskOut(BaseModel):
    id: str
    analysis_id: str
    task_id: str
    title: str
    description: Optional[str]
    priority: str
    status: str
    position: int
    due_date: Optional[date]
    scheduled_date: Optional[date]
    scheduled_time: Optional[str]
    postponed_until: Optional[date]
    subtasks: List[SubtaskOut]
    created_at: Optional[datetime]


class ReminderSettings(BaseModel):
    enabled: bool = True
    number_reminders: int = Field(ge=0, le=48)
    start_time: str
    end_time: str


class GenerateTasksRequest(BaseModel):
    analysis_id: Optional[str] = None
    transcript: Optional[str] = None
    emotional_state: Optional[int] = Field(default=None, ge=1, le=10)
    energy_level: Optional[int] = Field(default=None, ge=1, le=10)
    brain_clarity: Optional[int] = Field(default=None, ge=1, le=10)
    reminder_settings: Optional[ReminderSettings] = None


class GenerateTasksResponse(BaseModel):
    tasks: List[TaskOut]
    message: str
    tokens_used: int
    estimated_cost: float
    reminder_id: Optional[int] = None


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    position: Optional[int] = None
    # Accepted as YYYY-MM-DD strings and coerced by the store.
    due_date: Optional[str] = None
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    postponed_until: Optional[str] = None


class ReorderItem(BaseModel):
    task_id: str
    position: int


class ReorderRequest(BaseModel):
    updates: List[ReorderItem]


class ReorderResponse(BaseModel):
    updated_count: int
    total_requested: int


class SubtaskCreateRequest(BaseModel):
    title: str
    estimated_minutes: Optional[int] = Field(default=None, gt=0)


class SubtaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0)
    completed: Optional[bool] = None
