"""Task API routes."""
from __future__ import annotations

from time import perf_counter
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_clock, get_completion_gateway, get_user, user_now
from app.api.schemas.task import (
    GenerateTasksRequest,
    GenerateTasksResponse,
    ReorderRequest,
    ReorderResponse,
    SubtaskOut,
    TaskOut,
    TaskStatus,
    TaskUpdateRequest,
)
from app.core.config import Settings, get_settings
from app.db.deps import get_db
from app.db.models.task import Task
from app.db.models.user import User
from app.observability.metrics import log_latency, log_metric
from app.observability.tracing import annotate, trace
from app.services import task_store
from app.services.ai_pipeline import ReminderRequest, generate_tasks
from app.services.completion_gateway import CompletionGateway

router = APIRouter()


@router.post("/tasks/generate", response_model=GenerateTasksResponse, tags=["tasks"])
def generate_task_list(
    payload: GenerateTasksRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: CompletionGateway = Depends(get_completion_gateway),
    clock: Callable = Depends(get_clock),
) -> GenerateTasksResponse:
    """Turn a transcript into the task list of an existing analysis."""
    request_id = getattr(http_request.state, "request_id", None)
    user_id = user.id
    reminder = None
    if payload.reminder_settings and payload.reminder_settings.enabled:
        reminder = ReminderRequest(
            count=payload.reminder_settings.number_reminders,
            start_time=payload.reminder_settings.start_time,
            end_time=payload.reminder_settings.end_time,
        )

    started = perf_counter()
    with trace(
        "tasks.generate",
        metadata={"route": "/tasks/generate", "analysis_id": payload.analysis_id},
        user_id=user_id,
        request_id=request_id,
    ) as span:
        result = generate_tasks(
            db,
            user,
            analysis_id=payload.analysis_id,
            transcript=payload.transcript,
            scores=(payload.emotional_state, payload.energy_level, payload.brain_clarity),
            now=user_now(user, clock),
            gateway=gateway,
            settings=settings,
            reminder=reminder,
        )
        annotate(span, task_count=len(result.tasks), tokens_used=result.tokens_used, model=result.model)

    log_latency("tasks.generate.latency_ms", started, metadata={"model": result.model})
    return GenerateTasksResponse(
        tasks=[serialize_task(task) for task in result.tasks],
        message=f"Successfully generated {len(result.tasks)} tasks",
        tokens_used=result.tokens_used,
        estimated_cost=result.estimated_cost,
        reminder_id=result.reminder.id if result.reminder else None,
    )


@router.get("/tasks", response_model=List[TaskOut], tags=["tasks"])
def list_tasks(
    http_request: Request,
    status_filter: Optional[TaskStatus] = Query(default=None, alias="status"),
    analysis_id: Optional[str] = Query(default=None),
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> List[TaskOut]:
    """Flattened task list across all analyses."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "tasks.list",
        metadata={"route": "/tasks", "status": status_filter, "analysis_id": analysis_id},
        user_id=user.id,
        request_id=request_id,
    ):
        tasks = task_store.list_tasks(db, user.id, status=status_filter, analysis_id=analysis_id)

    log_metric("tasks.list.count", len(tasks), metadata={"status": status_filter or "all"})
    return [serialize_task(task) for task in tasks]


@router.put("/tasks/reorder", response_model=ReorderResponse, tags=["tasks"])
def reorder_tasks(
    payload: ReorderRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> ReorderResponse:
    """Apply new positions; unknown tasks are skipped and reported in the counts."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace("tasks.reorder", metadata={"requested": len(payload.updates)}, user_id=user.id, request_id=request_id):
        updated = task_store.reorder_tasks(db, user.id, [(item.task_id, item.position) for item in payload.updates])

    log_metric("tasks.reorder.updated", updated, metadata={"requested": len(payload.updates)})
    return ReorderResponse(updated_count=updated, total_requested=len(payload.updates))


@router.get("/tasks/{compound_id}", response_model=TaskOut, tags=["tasks"])
def get_task(
    compound_id: str,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> TaskOut:
    return serialize_task(task_store.get_task(db, user.id, compound_id))


@router.put("/tasks/{compound_id}", response_model=TaskOut, tags=["tasks"])
def update_task(
    compound_id: str,
    payload: TaskUpdateRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> TaskOut:
    """Apply a partial update; status changes keep the completion counter in step."""
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)
    with trace(
        "tasks.update",
        metadata={"task": compound_id, "fields": ",".join(sorted(changes))},
        user_id=user.id,
        request_id=request_id,
    ):
        task = task_store.update_task(db, user.id, compound_id, changes)

    if "status" in changes:
        log_metric("tasks.status_changed", 1, metadata={"status": changes["status"]})
    return serialize_task(task)


@router.delete("/tasks/{compound_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["tasks"])
def delete_task(
    compound_id: str,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("tasks.delete", metadata={"task": compound_id}, user_id=user.id, request_id=request_id):
        task_store.delete_task(db, user.id, compound_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def serialize_task(task: Task) -> TaskOut:
    return TaskOut(
        id=task_store.compound_id_for(task),
        analysis_id=task.analysis_id,
        task_id=task.id,
        title=task.title,
        description=task.description,
        priority=task.priority,
        status=task.status,
        position=task.position,
        due_date=task.due_date,
        scheduled_date=task.scheduled_date,
        scheduled_time=task.scheduled_time,
        postponed_until=task.postponed_until,
        subtasks=[
            SubtaskOut(
                index=index,
                title=subtask.title,
                estimated_minutes=subtask.estimated_minutes,
                completed=bool(subtask.completed),
            )
            for index, subtask in enumerate(task.subtasks)
        ],
        created_at=task.created_at,
    )
