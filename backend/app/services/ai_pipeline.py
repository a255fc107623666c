"""Brain-state analysis, task generation and progress matching: prompt -> LLM -> parser -> store -> metering."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from time import perf_counter
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import BrainPalError, InsufficientCredits, UpstreamAIError, ValidationError
from app.db.models.analysis import Analysis
from app.db.models.api_reminder import ApiReminder
from app.db.models.task import Task
from app.db.models.user import User
from app.observability.metrics import log_metric
from app.services import prompt_registry, task_store
from app.services.completion_gateway import CompletionGateway, CompletionResult, Message
from app.services.metering import estimate_cost, log_api_request, record_usage
from app.services.model_catalog import ModelChoice, resolve_model
from app.services.reminders import create_reminder
from app.services.response_parser import EmotionalAssessment, extract_emotional_state, extract_progress, extract_tasks
from app.services.task_store import ProgressOutcome
from app.services.user_service import load_api_keys, load_settings

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    analysis: Analysis
    assessment: EmotionalAssessment
    tokens_used: int
    estimated_cost: float
    model: str


@dataclass
class GenerationResult:
    tasks: List[Task]
    tokens_used: int
    estimated_cost: float
    model: str
    reminder: Optional[ApiReminder] = None


@dataclass
class ProgressResult:
    outcome: ProgressOutcome
    unplanned: List[str]
    celebration_message: str
    tokens_used: int
    estimated_cost: float
    model: str


@dataclass
class ReminderRequest:
    count: int
    start_time: str
    end_time: str


def analyze_brain_state(
    db: Session,
    user: User,
    transcript: str,
    *,
    gateway: CompletionGateway,
    settings: Settings,
) -> AnalysisResult:
    if not transcript or not transcript.strip():
        raise ValidationError("transcript")
    choice = _model_for(user, settings)
    template = prompt_registry.resolve(db, "identity", choice.key)
    messages: List[Message] = [
        {"role": "system", "content": template.content},
        {
            "role": "user",
            "content": f"A user has just completed a 'brain dump'. Here is their raw, unfiltered transcript:\n\"\"\"\n{transcript.strip()}\n\"\"\"",
        },
    ]

    completion, cost = _call(db, user, gateway, choice, messages, request_type="brain-state-analysis")
    assessment = extract_emotional_state(completion.text)
    analysis = task_store.append_analysis(db, user.id, transcript, assessment)
    log_metric("analysis.created", 1, metadata={"model": choice.provider_model})
    return AnalysisResult(
        analysis=analysis,
        assessment=assessment,
        tokens_used=completion.tokens_used,
        estimated_cost=cost,
        model=choice.provider_model,
    )


def generate_tasks(
    db: Session,
    user: User,
    *,
    analysis_id: Optional[str],
    transcript: Optional[str],
    scores: Tuple[Optional[int], Optional[int], Optional[int]],
    now: datetime,
    gateway: CompletionGateway,
    settings: Settings,
    reminder: Optional[ReminderRequest] = None,
) -> GenerationResult:
    if not transcript or not transcript.strip():
        raise ValidationError("transcript")
    if not analysis_id:
        raise ValidationError("analysis_id")
    task_store.get_analysis(db, user.id, analysis_id)

    # Fail fast before the model call; the charge itself commits with the task list.
    charge = settings.credits_per_generation
    available = (user.subscription_credits or 0) + (user.purchased_credits or 0)
    if charge > 0 and available < charge:
        raise InsufficientCredits(required=charge, available=available)

    choice = _model_for(user, settings)
    template = prompt_registry.resolve(db, "task_generation", choice.key)
    messages: List[Message] = [
        {"role": "system", "content": template.content},
        {"role": "user", "content": build_task_context(transcript.strip(), now, scores)},
    ]

    completion, cost = _call(db, user, gateway, choice, messages, request_type="task-generation")
    parsed = extract_tasks(
        completion.text,
        now=now,
        source_text=transcript,
        default_due_days=settings.default_due_days,
    )
    tasks = task_store.replace_task_list(db, user.id, analysis_id, parsed, scores=scores, credits=max(charge, 0))
    log_metric("tasks.generated", len(tasks), metadata={"model": choice.provider_model})

    created_reminder = None
    if reminder is not None:
        created_reminder = _materialize_reminder(db, user.id, reminder, now)

    return GenerationResult(
        tasks=tasks,
        tokens_used=completion.tokens_used,
        estimated_cost=cost,
        model=choice.provider_model,
        reminder=created_reminder,
    )


def build_task_context(
    transcript: str,
    now: datetime,
    scores: Tuple[Optional[int], Optional[int], Optional[int]],
) -> str:
    today = now.date()
    emotional_state, energy_level, brain_clarity = scores
    return "\n".join(
        [
            "CURRENT CONTEXT:",
            f"- Today's date: {today.isoformat()} ({today.strftime('%A')})",
            f"- Current time: {now.strftime('%H:%M')}",
            f"- Tomorrow's date: {(today + timedelta(days=1)).isoformat()}",
            "",
            "User's current state:",
            f"- Emotional State: {emotional_state or 5}/10",
            f"- Energy Level: {energy_level or 5}/10",
            f"- Brain Clarity: {brain_clarity or 5}/10",
            "",
            f'What they shared: "{transcript}"',
        ]
    )


def analyze_progress(
    db: Session,
    user: User,
    transcript: str,
    *,
    gateway: CompletionGateway,
    settings: Settings,
) -> ProgressResult:
    """Match an accomplishment report against open tasks and tick off the finished steps."""
    if not transcript or not transcript.strip():
        raise ValidationError("transcript")
    choice = _model_for(user, settings)
    template = prompt_registry.resolve(db, "progress", choice.key)
    open_tasks = [task for task in task_store.list_tasks(db, user.id) if task.status != "completed"]
    messages: List[Message] = [
        {"role": "system", "content": template.content},
        {"role": "user", "content": build_progress_context(transcript.strip(), open_tasks)},
    ]

    completion, cost = _call(db, user, gateway, choice, messages, request_type="progress-analysis")
    report = extract_progress(completion.text)
    outcome = task_store.complete_from_progress(db, user.id, report.matches)
    log_metric("progress.subtasks_completed", len(outcome.completed_subtasks), metadata={"model": choice.provider_model})
    return ProgressResult(
        outcome=outcome,
        unplanned=report.unplanned,
        celebration_message=report.celebration_message,
        tokens_used=completion.tokens_used,
        estimated_cost=cost,
        model=choice.provider_model,
    )


def build_progress_context(transcript: str, tasks: List[Task]) -> str:
    active = [
        {
            "task_id": task_store.compound_id_for(task),
            "title": task.title,
            "subtasks": [
                {"index": index, "title": subtask.title, "completed": bool(subtask.completed)}
                for index, subtask in enumerate(task.subtasks)
            ],
        }
        for task in tasks
    ]
    return "\n".join(
        [
            "User's accomplishment report:",
            f'"{transcript}"',
            "",
            "User's current active task list:",
            json.dumps(active, indent=2),
        ]
    )


def _model_for(user: User, settings: Settings) -> ModelChoice:
    return resolve_model(load_settings(user).selected_model, settings.default_model_key)


def _call(
    db: Session,
    user: User,
    gateway: CompletionGateway,
    choice: ModelChoice,
    messages: List[Message],
    *,
    request_type: str,
) -> Tuple[CompletionResult, float]:
    user_id = user.id
    credential = load_api_keys(user).openrouter
    started = perf_counter()
    try:
        completion = gateway.complete(choice.provider_model, messages, credential=credential)
    except UpstreamAIError as exc:
        log_api_request(
            db,
            user_id=user_id,
            request_type=request_type,
            model=choice.provider_model,
            status="error",
            response_time_ms=int((perf_counter() - started) * 1000),
            error_message=exc.message,
        )
        log_metric("llm.failure", 1, metadata={"model": choice.provider_model, "error": type(exc).__name__})
        raise

    cost = estimate_cost(
        choice.provider_model,
        completion.input_tokens,
        completion.output_tokens,
        completion.tokens_used,
    )
    record_usage(db, user_id, choice.provider_model, completion.tokens_used)
    log_api_request(
        db,
        user_id=user_id,
        request_type=request_type,
        model=choice.provider_model,
        status="success",
        tokens_used=completion.tokens_used,
        cost=cost,
        response_time_ms=int((perf_counter() - started) * 1000),
    )
    log_metric("llm.tokens", completion.tokens_used, metadata={"model": choice.provider_model})
    return completion, cost


def _materialize_reminder(db: Session, user_id: str, request: ReminderRequest, now: datetime) -> Optional[ApiReminder]:
    try:
        return create_reminder(
            db,
            user_id,
            count=request.count,
            name=f"Daily Reminders - {now.date().isoformat()}",
            start_time=request.start_time,
            end_time=request.end_time,
        )
    except (BrainPalError, SQLAlchemyError):
        db.rollback()
        logger.exception("Reminder creation failed for user=%s; tasks were saved", user_id)
        return None
