"""Brain-state analysis, progress matching and subtask routes."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_completion_gateway, get_user
from app.api.routes.task import serialize_task
from app.api.schemas.analysis import (
    AnalysisDeleteResponse,
    AnalysisOut,
    AnalyzeRequest,
    AnalyzeResponse,
    CompletedSubtaskOut,
    ProgressRequest,
    ProgressResponse,
)
from app.api.schemas.task import SubtaskCreateRequest, SubtaskUpdateRequest, TaskOut
from app.core.config import Settings, get_settings
from app.db.deps import get_db
from app.db.models.user import User
from app.observability.metrics import log_metric
from app.observability.tracing import annotate, trace
from app.services import ai_pipeline, task_store
from app.services.completion_gateway import CompletionGateway

router = APIRouter()


@router.post("/analyses", response_model=AnalyzeResponse, status_code=status.HTTP_201_CREATED, tags=["analyses"])
def analyze(
    payload: AnalyzeRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: CompletionGateway = Depends(get_completion_gateway),
) -> AnalyzeResponse:
    """Score a brain dump and store it as a new analysis."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "analyses.create",
        metadata={"route": "/analyses", "text_length": len(payload.transcript)},
        user_id=user.id,
        request_id=request_id,
    ) as span:
        result = ai_pipeline.analyze_brain_state(db, user, payload.transcript, gateway=gateway, settings=settings)
        annotate(span, analysis_id=result.analysis.id, tokens_used=result.tokens_used)

    assessment = result.assessment
    return AnalyzeResponse(
        analysis_id=result.analysis.id,
        empathetic_response=assessment.empathetic_response,
        emotional_state=assessment.emotional_state,
        energy_level=assessment.energy_level,
        brain_clarity=assessment.brain_clarity,
        reasoning=assessment.reasoning,
        analysis_title=assessment.analysis_title,
        tokens_used=result.tokens_used,
        estimated_cost=result.estimated_cost,
        model=result.model,
    )


@router.get("/analyses", response_model=List[AnalysisOut], tags=["analyses"])
def list_analyses(user: User = Depends(get_user), db: Session = Depends(get_db)) -> List[AnalysisOut]:
    """Analyses newest first, each with its ordered action plan."""
    analyses = task_store.list_analyses(db, user.id)
    return [
        AnalysisOut(
            id=analysis.id,
            transcript=analysis.transcript,
            title=analysis.title_text,
            summary=analysis.summary_text,
            emotional_state=analysis.emotional_state,
            energy_level=analysis.energy_level,
            brain_clarity=analysis.brain_clarity,
            completed=bool(analysis.completed),
            created_at=analysis.created_at,
            tasks=[
                serialize_task(task)
                for task in sorted(analysis.tasks, key=lambda task: task.position)
            ],
        )
        for analysis in analyses
    ]


@router.post("/analyses/progress", response_model=ProgressResponse, tags=["analyses"])
def analyze_progress(
    payload: ProgressRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: CompletionGateway = Depends(get_completion_gateway),
) -> ProgressResponse:
    """Tick off the steps an accomplishment report says are done."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "analyses.progress",
        metadata={"route": "/analyses/progress", "text_length": len(payload.transcript)},
        user_id=user.id,
        request_id=request_id,
    ) as span:
        result = ai_pipeline.analyze_progress(db, user, payload.transcript, gateway=gateway, settings=settings)
        annotate(
            span,
            subtasks_completed=len(result.outcome.completed_subtasks),
            tasks_completed=len(result.outcome.completed_tasks),
        )

    return ProgressResponse(
        completed_subtasks=[
            CompletedSubtaskOut(task_id=task_id, subtask_index=index)
            for task_id, index in result.outcome.completed_subtasks
        ],
        completed_tasks=result.outcome.completed_tasks,
        unplanned_accomplishments=result.unplanned,
        celebration_message=result.celebration_message,
        tokens_used=result.tokens_used,
        estimated_cost=result.estimated_cost,
        model=result.model,
    )


@router.delete("/analyses/{analysis_id}", response_model=AnalysisDeleteResponse, tags=["analyses"])
def delete_analysis(
    analysis_id: str,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> AnalysisDeleteResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("analyses.delete", metadata={"analysis_id": analysis_id}, user_id=user.id, request_id=request_id):
        removed = task_store.delete_analysis(db, user.id, analysis_id)
    log_metric("analyses.deleted_tasks", removed)
    return AnalysisDeleteResponse(tasks_deleted=removed)


@router.post(
    "/analyses/{analysis_id}/tasks/{task_id}/subtasks",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    tags=["subtasks"],
)
def add_subtask(
    analysis_id: str,
    task_id: str,
    payload: SubtaskCreateRequest,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> TaskOut:
    task, _ = task_store.add_subtask(
        db,
        user.id,
        analysis_id,
        task_id,
        title=payload.title,
        estimated_minutes=payload.estimated_minutes,
    )
    return serialize_task(task)


@router.put("/analyses/{analysis_id}/tasks/{task_id}/subtasks/{index}", response_model=TaskOut, tags=["subtasks"])
def update_subtask(
    analysis_id: str,
    task_id: str,
    index: int,
    payload: SubtaskUpdateRequest,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> TaskOut:
    task_store.update_subtask(db, user.id, analysis_id, task_id, index, payload.model_dump(exclude_unset=True))
    return serialize_task(task_store.get_task(db, user.id, task_store.join_compound_id(analysis_id, task_id)))


@router.delete(
    "/analyses/{analysis_id}/tasks/{task_id}/subtasks/{index}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["subtasks"],
)
def delete_subtask(
    analysis_id: str,
    task_id: str,
    index: int,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
) -> Response:
    task_store.delete_subtask(db, user.id, analysis_id, task_id, index)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
