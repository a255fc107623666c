"""Tolerant extraction of tasks and emotional scores from LLM output.

Everything here is a pure function of its inputs; "now" is always passed in.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, List, Optional

from app.core.errors import UnparseableAIResponse
from app.services.date_phrases import (
    apply_schedule,
    normalize_clock,
    parse_iso_date,
)

logger = logging.getLogger(__name__)

DEFAULT_TASK_TITLE = "Untitled Task"
DEFAULT_SUBTASK_TITLE = "Untitled step"
DEFAULT_ANALYSIS_TITLE = "Brain Analysis"
DEFAULT_ESTIMATED_MINUTES = 10
DEFAULT_SCORE = 5
DEFAULT_CELEBRATION = "Nice work. Every finished step counts."
PRIORITIES = ("low", "medium", "high")

_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*\n?(.*?)```", re.DOTALL)
_BRACE_RE = re.compile(r"\{[\s\S]*\}")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_TASK_HEADER_RE = re.compile(r"^(?:\d+[.)]|[-*•])\s+(.+)$")


@dataclass
class ParsedSubtask:
    title: str
    estimated_minutes: int = DEFAULT_ESTIMATED_MINUTES


@dataclass
class ParsedTask:
    title: str
    description: str = ""
    priority: str = "medium"
    due_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    subtasks: List[ParsedSubtask] = field(default_factory=list)


@dataclass
class EmotionalAssessment:
    empathetic_response: str
    emotional_state: int
    energy_level: int
    brain_clarity: int
    reasoning: str
    analysis_title: str


@dataclass
class ProgressMatch:
    task_id: str
    # None means every step of the task.
    subtask_indices: Optional[List[int]] = None


@dataclass
class ProgressReport:
    matches: List[ProgressMatch]
    unplanned: List[str]
    celebration_message: str


# JSON ladder ---------------------------------------------------------------


def _parse_direct(text: str) -> Any:
    return json.loads(text)


def _parse_fenced(text: str) -> Any:
    match = _FENCE_RE.search(text)
    if not match:
        raise ValueError("no fenced block")
    return json.loads(match.group(1).strip())


def _parse_brace_span(text: str) -> Any:
    match = _BRACE_RE.search(text)
    if not match:
        raise ValueError("no brace span")
    return json.loads(_CONTROL_RE.sub("", match.group(0)))


_LADDER: List[Callable[[str], Any]] = [_parse_direct, _parse_fenced, _parse_brace_span]


def load_json_payload(text: str) -> Any:
    """Parse ``text`` with the first JSON rung that succeeds."""
    for rung in _LADDER:
        try:
            return rung(text or "")
        except (ValueError, TypeError):
            continue
    logger.warning("No JSON found in AI response: %r", (text or "")[:200])
    raise UnparseableAIResponse("No JSON found in AI response")


# Tasks ---------------------------------------------------------------------


def extract_tasks(
    text: str,
    *,
    now: datetime | date,
    source_text: Optional[str] = None,
    default_due_days: int = 3,
) -> List[ParsedTask]:
    """Structured tasks from an LLM reply, with due dates and times resolved against ``now``."""
    try:
        payload = load_json_payload(text)
    except UnparseableAIResponse:
        payload = None

    items = _task_items(payload)
    if items is not None:
        tasks = [_normalize_task(item) for item in items if isinstance(item, (dict, str))]
        raw_schedules = [_raw_schedule(item) for item in items if isinstance(item, (dict, str))]
    else:
        tasks = scan_task_lines(text or "")
        raw_schedules = [(None, None)] * len(tasks)
        if not tasks:
            raise UnparseableAIResponse("AI response contained no recognizable tasks")
        logger.info("Recovered %s task(s) from AI response by line scan", len(tasks))

    today = now.date() if isinstance(now, datetime) else now
    for task, (raw_due, raw_time) in zip(tasks, raw_schedules):
        task.due_date, task.scheduled_time = apply_schedule(
            f"{task.title} {task.description}",
            today,
            title=task.title,
            given_due=parse_iso_date(raw_due),
            given_time=normalize_clock(raw_time),
            source_text=source_text,
            default_due_days=default_due_days,
        )
    return tasks


def scan_task_lines(text: str) -> List[ParsedTask]:
    """Last-resort task recovery from numbered or bulleted plain text."""
    tasks: List[ParsedTask] = []
    current: Optional[ParsedTask] = None
    has_description = False

    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if not stripped:
            continue
        indented = raw_line[0] in (" ", "\t")
        header = _TASK_HEADER_RE.match(stripped)

        if indented and header and current is not None:
            current.subtasks.append(ParsedSubtask(title=_clean_title(header.group(1)) or DEFAULT_SUBTASK_TITLE))
        elif header and not indented:
            current = ParsedTask(title=_clean_title(header.group(1)) or DEFAULT_TASK_TITLE)
            has_description = False
            tasks.append(current)
        elif current is not None and not indented and not has_description:
            current.description = stripped
            has_description = True
    return tasks


def _task_items(payload: Any) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("tasks"), list):
        return payload["tasks"]
    return None


def _normalize_task(item: Any) -> ParsedTask:
    if isinstance(item, str):
        return ParsedTask(title=item.strip() or DEFAULT_TASK_TITLE)

    title = _as_text(item.get("title")) or DEFAULT_TASK_TITLE
    priority = _as_text(item.get("priority")).lower()
    subtasks_raw = item.get("subtasks") or item.get("micro_steps") or []
    subtasks = []
    if isinstance(subtasks_raw, list):
        for raw in subtasks_raw:
            if isinstance(raw, str):
                subtasks.append(ParsedSubtask(title=raw.strip() or DEFAULT_SUBTASK_TITLE))
            elif isinstance(raw, dict):
                subtasks.append(
                    ParsedSubtask(
                        title=_as_text(raw.get("title")) or DEFAULT_SUBTASK_TITLE,
                        estimated_minutes=_positive_int(
                            raw.get("estimated_minutes", raw.get("estimatedMinutes")),
                            DEFAULT_ESTIMATED_MINUTES,
                        ),
                    )
                )
    return ParsedTask(
        title=title,
        description=_as_text(item.get("description")),
        priority=priority if priority in PRIORITIES else "medium",
        subtasks=subtasks,
    )


def _raw_schedule(item: Any) -> tuple:
    if not isinstance(item, dict):
        return None, None
    return (
        item.get("due_date", item.get("dueDate")),
        item.get("scheduled_time", item.get("scheduledTime")),
    )


# Emotional state -----------------------------------------------------------


def extract_emotional_state(text: str) -> EmotionalAssessment:
    payload = load_json_payload(text)
    if not isinstance(payload, dict):
        raise UnparseableAIResponse("AI response JSON is not an object")

    return EmotionalAssessment(
        empathetic_response=_as_text(_first(payload, "empathetic_response", "empathicResponse", "empathetic_reflection")),
        emotional_state=clamp_score(_first(payload, "emotional_state", "emotionalState")),
        energy_level=clamp_score(_first(payload, "energy_level", "energyLevel")),
        brain_clarity=clamp_score(_first(payload, "brain_clarity", "brainClarity")),
        reasoning=_as_text(payload.get("reasoning")),
        analysis_title=_as_text(_first(payload, "analysis_title", "analysisTitle")) or DEFAULT_ANALYSIS_TITLE,
    )


def clamp_score(value: Any) -> int:
    """Integer score in [1, 10]; anything non-numeric becomes the neutral 5."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_SCORE
    try:
        number = round(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_SCORE
    return max(1, min(10, int(number)))


# Progress ------------------------------------------------------------------


def extract_progress(text: str) -> ProgressReport:
    """Read the model's matches of an accomplishment report against active tasks.

    A match without subtask indices (or with ``all_subtasks``) covers the whole task.
    Entries without a task id are dropped; ids and indices are validated by the store.
    """
    payload = load_json_payload(text)
    if not isinstance(payload, dict):
        raise UnparseableAIResponse("AI response JSON is not an object")

    matches: List[ProgressMatch] = []
    items = _first(payload, "completed_tasks", "completedTasks")
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        task_id = _as_text(_first(item, "task_id", "taskId", "id"))
        if not task_id:
            continue
        raw = _first(item, "subtask_indices", "subtaskIndices", "completed_subtasks")
        if item.get("all_subtasks") is True or raw is None:
            matches.append(ProgressMatch(task_id=task_id))
        elif isinstance(raw, list):
            indices = [index for index in (_index(value) for value in raw) if index is not None]
            matches.append(ProgressMatch(task_id=task_id, subtask_indices=indices))

    unplanned = _first(payload, "unplanned_accomplishments", "unplannedAccomplishments")
    return ProgressReport(
        matches=matches,
        unplanned=[_as_text(entry) for entry in unplanned if _as_text(entry)] if isinstance(unplanned, list) else [],
        celebration_message=_as_text(_first(payload, "celebration_message", "celebrationMessage"))
        or DEFAULT_CELEBRATION,
    )


def _index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


# helpers -------------------------------------------------------------------


def _first(payload: dict, *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _clean_title(value: str) -> str:
    return value.strip().strip("*_:").strip()
