"""Administrator routes: prompt templates and usage statistics."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.schemas.admin import PromptOut, PromptUpdateRequest, UsageStatsResponse
from app.core.auth import AuthUser, require_admin
from app.db.deps import get_db
from app.db.models.prompt_template import PromptTemplate
from app.observability.tracing import trace
from app.services import prompt_registry
from app.services.metering import usage_statistics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/prompts", response_model=List[PromptOut])
def list_prompts(_: AuthUser = Depends(require_admin), db: Session = Depends(get_db)) -> List[PromptOut]:
    return [_serialize(template) for template in prompt_registry.list_prompts(db)]


@router.get("/prompts/{name}", response_model=PromptOut)
def get_prompt(name: str, _: AuthUser = Depends(require_admin), db: Session = Depends(get_db)) -> PromptOut:
    return _serialize(prompt_registry.get_prompt(db, name))


@router.put("/prompts/{name}", response_model=PromptOut)
def update_prompt(
    name: str,
    payload: PromptUpdateRequest,
    http_request: Request,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PromptOut:
    """Edits take effect on the next AI call; no restart needed."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace("admin.prompts.update", metadata={"prompt": name}, user_id=admin.user_id, request_id=request_id):
        template = prompt_registry.update_prompt(
            db,
            name,
            content=payload.content,
            modified_by=admin.email or admin.user_id,
            description=payload.description,
            is_active=payload.is_active,
        )
    return _serialize(template)


@router.get("/usage-stats", response_model=UsageStatsResponse)
def usage_stats(_: AuthUser = Depends(require_admin), db: Session = Depends(get_db)) -> UsageStatsResponse:
    return UsageStatsResponse.model_validate(usage_statistics(db))


def _serialize(template: PromptTemplate) -> PromptOut:
    return PromptOut(
        name=template.name,
        content=template.content,
        description=template.description,
        is_active=bool(template.is_active),
        last_modified_by=template.last_modified_by,
        updated_at=template.updated_at,
    )
