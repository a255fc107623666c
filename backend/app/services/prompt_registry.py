"""Lookup and administration of named prompt templates."""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFound, PromptNotConfigured, ValidationError
from app.db.models.prompt_template import PromptTemplate
from app.services.model_catalog import MODEL_CHOICES
from app.services.prompt_defaults import default_prompts

logger = logging.getLogger(__name__)

INTENT_PREFIXES = {
    "identity": "identity",
    "task_generation": "task",
    "progress": "progress",
}


def prompt_name(intent: str, model_key: str) -> str:
    prefix = INTENT_PREFIXES.get(intent)
    if prefix is None:
        raise ValueError(f"Unknown prompt intent: {intent}")
    choice = MODEL_CHOICES.get(model_key)
    suffix = choice.prompt_suffix if choice else model_key.removeprefix("custom_")
    return f"brainpal_{prefix}_{suffix}"


def resolve(db: Session, intent: str, model_key: str) -> PromptTemplate:
    """Return the active template for (intent, model).

    Always reads from the database so administrator edits apply to the next request.
    """
    name = prompt_name(intent, model_key)
    template = (
        db.query(PromptTemplate)
        .filter(PromptTemplate.name == name, PromptTemplate.is_active.is_(True))
        .populate_existing()
        .one_or_none()
    )
    if template is None:
        logger.error("Required prompt %s is missing or inactive", name)
        raise PromptNotConfigured(name)
    return template


def list_prompts(db: Session) -> List[PromptTemplate]:
    return db.query(PromptTemplate).order_by(PromptTemplate.name.asc()).all()


def get_prompt(db: Session, name: str) -> PromptTemplate:
    template = db.query(PromptTemplate).filter(PromptTemplate.name == name).one_or_none()
    if template is None:
        raise NotFound("Prompt", name)
    return template


def update_prompt(
    db: Session,
    name: str,
    *,
    content: str,
    modified_by: str,
    description: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> PromptTemplate:
    cleaned = (content or "").strip()
    if not cleaned:
        raise ValidationError("content")
    template = get_prompt(db, name)
    template.content = cleaned
    if description is not None:
        template.description = description
    if is_active is not None:
        template.is_active = is_active
    template.last_modified_by = modified_by
    db.commit()
    db.refresh(template)
    logger.info("Prompt %s updated by %s", name, modified_by)
    return template


def seed_default_prompts(db: Session) -> int:
    """Insert any stock prompt that is missing; existing (possibly edited) rows are left alone."""
    existing = {name for (name,) in db.query(PromptTemplate.name).all()}
    created = 0
    for row in default_prompts():
        if row["name"] in existing:
            continue
        db.add(PromptTemplate(is_active=True, **row))
        created += 1
    db.commit()
    return created
