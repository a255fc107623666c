"""User -> Analysis -> Task -> Subtask persistence.

Every mutating operation loads the user row, changes the aggregate and commits
through ``run_atomic`` so the user's version stamp guards against lost updates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.core.errors import InvalidIdentifier, NotFound, ValidationError
from app.db.models.analysis import Analysis
from app.db.models.subtask import DEFAULT_ESTIMATED_MINUTES, Subtask
from app.db.models.task import TASK_PRIORITIES, TASK_STATUSES, Task
from app.db.models.user import User
from app.db.types import new_id
from app.db.unit_of_work import run_atomic, touch
from app.services.date_phrases import normalize_clock, parse_iso_date
from app.services.ledger import consume_credits
from app.services.response_parser import EmotionalAssessment, ParsedTask, ProgressMatch

logger = logging.getLogger(__name__)

COMPOUND_SEPARATOR = "-"
DATE_FIELDS = ("due_date", "scheduled_date", "postponed_until")
UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "status",
    "position",
    "due_date",
    "scheduled_date",
    "scheduled_time",
    "postponed_until",
)


@dataclass
class ProgressOutcome:
    completed_subtasks: List[Tuple[str, int]] = field(default_factory=list)
    completed_tasks: List[str] = field(default_factory=list)


def join_compound_id(analysis_id: str, task_id: str) -> str:
    return f"{analysis_id}{COMPOUND_SEPARATOR}{task_id}"


def split_compound_id(value: Any) -> Tuple[str, str]:
    """Split on the first separator only; the task half may itself contain separators."""
    if not isinstance(value, str):
        raise InvalidIdentifier(str(value))
    analysis_id, separator, task_id = value.partition(COMPOUND_SEPARATOR)
    if not separator or not analysis_id or not task_id:
        raise InvalidIdentifier(value)
    return analysis_id, task_id


def derive_completed(tasks: Iterable[Task]) -> bool:
    tasks = list(tasks)
    return bool(tasks) and all(task.status == "completed" for task in tasks)


def compound_id_for(task: Task) -> str:
    return join_compound_id(task.analysis_id, task.id)


# analyses ------------------------------------------------------------------


def append_analysis(
    db: Session,
    user_id: str,
    transcript: str,
    assessment: Optional[EmotionalAssessment] = None,
) -> Analysis:
    if not transcript or not transcript.strip():
        raise ValidationError("transcript")

    def _apply(session: Session) -> Analysis:
        user = _load_user(session, user_id)
        analysis = Analysis(
            id=new_id(),
            user_id=user.id,
            transcript=transcript.strip(),
            completed=False,
            # Explicit so same-second analyses still list newest first.
            created_at=datetime.now(timezone.utc),
        )
        if assessment is not None:
            analysis.emotional_state = assessment.emotional_state
            analysis.energy_level = assessment.energy_level
            analysis.brain_clarity = assessment.brain_clarity
            analysis.summary_text = assessment.empathetic_response
            analysis.reasoning = assessment.reasoning
            analysis.title_text = assessment.analysis_title
        user.analyses.append(analysis)
        touch(user)
        return analysis

    return run_atomic(db, _apply)


def list_analyses(db: Session, user_id: str) -> List[Analysis]:
    return (
        db.query(Analysis)
        .filter(Analysis.user_id == user_id)
        .order_by(Analysis.created_at.desc(), Analysis.id.desc())
        .all()
    )


def get_analysis(db: Session, user_id: str, analysis_id: str) -> Analysis:
    analysis = (
        db.query(Analysis)
        .filter(Analysis.id == analysis_id, Analysis.user_id == user_id)
        .one_or_none()
    )
    if analysis is None:
        raise NotFound("Analysis", analysis_id)
    return analysis


def delete_analysis(db: Session, user_id: str, analysis_id: str) -> int:
    """Remove an analysis and its tasks; returns how many tasks went with it."""

    def _apply(session: Session) -> int:
        user = _load_user(session, user_id)
        analysis = get_analysis(session, user_id, analysis_id)
        removed = len(analysis.tasks)
        completed = sum(1 for task in analysis.tasks if task.status == "completed")
        _adjust_completed(user, -completed)
        user.analyses.remove(analysis)
        touch(user)
        return removed

    return run_atomic(db, _apply)


# tasks ---------------------------------------------------------------------


def replace_task_list(
    db: Session,
    user_id: str,
    analysis_id: str,
    tasks: Sequence[ParsedTask],
    *,
    scores: Optional[Tuple[Optional[int], Optional[int], Optional[int]]] = None,
    credits: int = 0,
) -> List[Task]:
    """Swap an analysis's tasks for ``tasks``, positions following submission order.

    A positive ``credits`` is spent in the same commit; ``InsufficientCredits`` leaves
    the previous task list untouched.
    """

    def _apply(session: Session) -> List[Task]:
        user = _load_user(session, user_id)
        analysis = get_analysis(session, user_id, analysis_id)

        _adjust_completed(user, -sum(1 for task in analysis.tasks if task.status == "completed"))
        analysis.tasks.clear()

        created = []
        for index, parsed in enumerate(tasks):
            task = Task(
                id=new_id(),
                user_id=user.id,
                title=parsed.title,
                description=parsed.description or None,
                priority=parsed.priority,
                status="pending",
                position=index,
                due_date=parsed.due_date,
                scheduled_date=parsed.due_date,
                scheduled_time=parsed.scheduled_time,
            )
            for ordinal, step in enumerate(parsed.subtasks):
                task.subtasks.append(
                    Subtask(ordinal=ordinal, title=step.title, estimated_minutes=step.estimated_minutes)
                )
            analysis.tasks.append(task)
            created.append(task)

        if scores is not None:
            emotional_state, energy_level, brain_clarity = scores
            if emotional_state is not None:
                analysis.emotional_state = emotional_state
            if energy_level is not None:
                analysis.energy_level = energy_level
            if brain_clarity is not None:
                analysis.brain_clarity = brain_clarity
        analysis.completed = derive_completed(analysis.tasks)
        if credits > 0:
            consume_credits(user, credits, f"Task generation ({len(created)} tasks)")
        touch(user)
        return created

    return run_atomic(db, _apply)


def get_task(db: Session, user_id: str, compound_id: str) -> Task:
    analysis_id, task_id = split_compound_id(compound_id)
    return _find_task(db, user_id, analysis_id, task_id)


def list_tasks(
    db: Session,
    user_id: str,
    *,
    status: Optional[str] = None,
    analysis_id: Optional[str] = None,
) -> List[Task]:
    """All of a user's tasks across analyses, by position then newest first."""
    query = db.query(Task).filter(Task.user_id == user_id)
    if status:
        query = query.filter(Task.status == status)
    if analysis_id:
        query = query.filter(Task.analysis_id == analysis_id)
    return query.order_by(Task.position.asc(), Task.created_at.desc(), Task.id.asc()).all()


def update_task(db: Session, user_id: str, compound_id: str, changes: Dict[str, Any]) -> Task:
    analysis_id, task_id = split_compound_id(compound_id)
    values = _coerce_task_changes(changes)

    def _apply(session: Session) -> Task:
        user = _load_user(session, user_id)
        task = _find_task(session, user_id, analysis_id, task_id)

        previous_status = task.status
        for name, value in values.items():
            setattr(task, name, value)

        if previous_status != task.status:
            if task.status == "completed":
                _adjust_completed(user, 1)
            elif previous_status == "completed":
                _adjust_completed(user, -1)

        _refresh_completion(task.analysis)
        touch(user)
        return task

    return run_atomic(db, _apply)


def delete_task(db: Session, user_id: str, compound_id: str) -> None:
    analysis_id, task_id = split_compound_id(compound_id)

    def _apply(session: Session) -> None:
        user = _load_user(session, user_id)
        task = _find_task(session, user_id, analysis_id, task_id)
        analysis = task.analysis
        if task.status == "completed":
            _adjust_completed(user, -1)
        analysis.tasks.remove(task)
        _refresh_completion(analysis)
        touch(user)

    run_atomic(db, _apply)


def reorder_tasks(db: Session, user_id: str, updates: Sequence[Tuple[Any, Any]]) -> int:
    """Apply (compound_id, position) pairs; unresolvable entries are skipped, not fatal."""
    if not updates:
        return 0

    def _apply(session: Session) -> int:
        user = _load_user(session, user_id)
        updated = 0
        for compound_id, position in updates:
            try:
                analysis_id, task_id = split_compound_id(compound_id)
                task = _find_task(session, user_id, analysis_id, task_id)
            except (InvalidIdentifier, NotFound):
                logger.info("Skipping reorder of unknown task %r", compound_id)
                continue
            if isinstance(position, bool) or not isinstance(position, int):
                logger.info("Skipping reorder of %s with non-integer position %r", compound_id, position)
                continue
            task.position = position
            updated += 1
        if updated:
            touch(user)
        return updated

    return run_atomic(db, _apply)


# subtasks ------------------------------------------------------------------


def add_subtask(
    db: Session,
    user_id: str,
    analysis_id: str,
    task_id: str,
    *,
    title: str,
    estimated_minutes: Optional[int] = None,
) -> Tuple[Task, int]:
    if not title or not title.strip():
        raise ValidationError("title")

    def _apply(session: Session) -> Tuple[Task, int]:
        user = _load_user(session, user_id)
        task = _find_task(session, user_id, analysis_id, task_id)
        task.subtasks.append(
            Subtask(title=title.strip(), estimated_minutes=estimated_minutes or DEFAULT_ESTIMATED_MINUTES)
        )
        touch(user)
        return task, len(task.subtasks) - 1

    return run_atomic(db, _apply)


def update_subtask(
    db: Session,
    user_id: str,
    analysis_id: str,
    task_id: str,
    index: int,
    changes: Dict[str, Any],
) -> Subtask:
    def _apply(session: Session) -> Subtask:
        user = _load_user(session, user_id)
        task = _find_task(session, user_id, analysis_id, task_id)
        subtask = _subtask_at(task, index)
        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise ValidationError("title", "must not be empty")
            subtask.title = title
        if changes.get("estimated_minutes") is not None:
            if changes["estimated_minutes"] <= 0:
                raise ValidationError("estimated_minutes", "must be positive")
            subtask.estimated_minutes = changes["estimated_minutes"]
        if changes.get("completed") is not None:
            subtask.completed = bool(changes["completed"])
        touch(user)
        return subtask

    return run_atomic(db, _apply)


def delete_subtask(db: Session, user_id: str, analysis_id: str, task_id: str, index: int) -> None:
    def _apply(session: Session) -> None:
        user = _load_user(session, user_id)
        task = _find_task(session, user_id, analysis_id, task_id)
        _subtask_at(task, index)
        # ordering_list renumbers the remaining ordinals.
        task.subtasks.pop(index)
        touch(user)

    run_atomic(db, _apply)


def complete_from_progress(db: Session, user_id: str, matches: Sequence[ProgressMatch]) -> ProgressOutcome:
    """Mark matched subtasks done in one commit; unknown tasks and indices are skipped.

    A task whose steps are now all done is completed, and so is a step-less task
    matched as a whole.
    """
    if not matches:
        return ProgressOutcome()

    def _apply(session: Session) -> ProgressOutcome:
        user = _load_user(session, user_id)
        outcome = ProgressOutcome()
        for match in matches:
            try:
                analysis_id, task_id = split_compound_id(match.task_id)
                task = _find_task(session, user_id, analysis_id, task_id)
            except (InvalidIdentifier, NotFound):
                logger.info("Skipping progress for unknown task %r", match.task_id)
                continue

            indices = range(len(task.subtasks)) if match.subtask_indices is None else match.subtask_indices
            for index in indices:
                if not 0 <= index < len(task.subtasks) or task.subtasks[index].completed:
                    continue
                task.subtasks[index].completed = True
                outcome.completed_subtasks.append((match.task_id, index))

            if task.subtasks:
                finished = all(subtask.completed for subtask in task.subtasks)
            else:
                finished = match.subtask_indices is None
            if finished and task.status != "completed":
                task.status = "completed"
                _adjust_completed(user, 1)
                _refresh_completion(task.analysis)
                outcome.completed_tasks.append(match.task_id)

        if outcome.completed_subtasks or outcome.completed_tasks:
            touch(user)
        return outcome

    return run_atomic(db, _apply)


# helpers -------------------------------------------------------------------


def _load_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def _find_task(db: Session, user_id: str, analysis_id: str, task_id: str) -> Task:
    get_analysis(db, user_id, analysis_id)
    task = (
        db.query(Task)
        .filter(Task.id == task_id, Task.analysis_id == analysis_id, Task.user_id == user_id)
        .one_or_none()
    )
    if task is None:
        raise NotFound("Task", join_compound_id(analysis_id, task_id))
    return task


def _subtask_at(task: Task, index: int) -> Subtask:
    if index < 0 or index >= len(task.subtasks):
        raise NotFound("Subtask", str(index))
    return task.subtasks[index]


def _adjust_completed(user: User, delta: int) -> None:
    user.completed_tasks = max(0, (user.completed_tasks or 0) + delta)


def _refresh_completion(analysis: Analysis) -> None:
    completed = derive_completed(analysis.tasks)
    if analysis.completed != completed:
        analysis.completed = completed


def _coerce_task_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, value in changes.items():
        if name not in UPDATABLE_FIELDS:
            continue
        if name in DATE_FIELDS:
            values[name] = _coerce_date(name, value)
        elif name == "scheduled_time":
            if value in (None, ""):
                values[name] = None
            else:
                normalized = normalize_clock(value)
                if normalized is None:
                    raise ValidationError("scheduled_time", "must be HH:MM")
                values[name] = normalized
        elif name == "priority":
            if value not in TASK_PRIORITIES:
                raise ValidationError("priority", f"must be one of {', '.join(TASK_PRIORITIES)}")
            values[name] = value
        elif name == "status":
            if value not in TASK_STATUSES:
                raise ValidationError("status", f"must be one of {', '.join(TASK_STATUSES)}")
            values[name] = value
        elif name == "title":
            if not value or not str(value).strip():
                raise ValidationError("title", "must not be empty")
            values[name] = str(value).strip()
        elif name == "position":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError("position", "must be an integer")
            values[name] = value
        else:
            values[name] = value
    return values


def _coerce_date(name: str, value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    parsed = parse_iso_date(value)
    if parsed is None:
        raise ValidationError(name, "must be a YYYY-MM-DD date")
    return parsed
