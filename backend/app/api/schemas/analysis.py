"""Schemas for brain-state analyses."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.api.schemas.task import TaskOut


class AnalyzeRequest(BaseModel):
    transcript: str


class AnalyzeResponse(BaseModel):
    analysis_id: str
    empathetic_response: str
    emotional_state: int
    energy_level: int
    brain_clarity: int
    reasoning: str
    analysis_title: str
    tokens_used: int
    estimated_cost: float
    model: str


class AnalysisOut(BaseModel):
    id: str
    transcript: str
    title: Optional[str]
    summary: Optional[str]
    emotional_state: Optional[int]
    energy_level: Optional[int]
    brain_clarity: Optional[int]
    completed: bool
    created_at: Optional[datetime]
    tasks: List[TaskOut]


class AnalysisDeleteResponse(BaseModel):
    tasks_deleted: int


class ProgressRequest(BaseModel):
    transcript: str


class CompletedSubtaskOut(BaseModel):
    task_id: str
    subtask_index: int


class ProgressResponse(BaseModel):
    completed_subtasks: List[CompletedSubtaskOut]
    completed_tasks: List[str]
    unplanned_accomplishments: List[str]
    celebration_message: str
    tokens_used: int
    estimated_cost: float
    model: str
