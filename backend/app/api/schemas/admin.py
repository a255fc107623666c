"""Schemas for administrator endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class PromptOut(BaseModel):
    name: str
    content: str
    description: Optional[str]
    is_active: bool
    last_modified_by: Optional[str]
    updated_at: Optional[datetime]


class PromptUpdateRequest(BaseModel):
    content: str
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ModelUsage(BaseModel):
    model: Optional[str]
    requests: int
    failures: int
    tokens: int
    cost: float


class RevenueByType(BaseModel):
    transaction_type: str
    count: int
    amount: float
    credits: int


class UsageStatsResponse(BaseModel):
    total_requests: int
    models: List[ModelUsage]
    revenue: List[RevenueByType]
    totals: Dict[str, float]
