"""Schemas for audio transcription."""
from __future__ import annotations

from pydantic import BaseModel


class TranscriptionResponse(BaseModel):
    transcript: str
    duration_seconds: int
    units: int
