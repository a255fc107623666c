"""Optimistic-concurrency retry loop around a single user-aggregate write."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import ConcurrentModification
from app.db.models.user import User

logger = logging.getLogger(__name__)

T = TypeVar("T")


def touch(user: User) -> None:
    """Mark the aggregate root dirty so its version stamp is checked and bumped on flush."""
    user.updated_at = datetime.now(timezone.utc)


def run_atomic(
    db: Session,
    operation: Callable[[Session], T],
    *,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """Run ``operation`` and commit, retrying the whole operation on a version conflict.

    ``operation`` must load everything it mutates from ``db`` on each call, because a
    rollback expires every instance in the session. Any other exception rolls back and
    propagates unchanged.
    """
    max_attempts = attempts if attempts is not None else settings.store_retry_attempts
    backoff = backoff_seconds if backoff_seconds is not None else settings.store_retry_backoff_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            result = operation(db)
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning("Version conflict on attempt %s/%s", attempt, max_attempts)
            if attempt == max_attempts:
                break
            time.sleep(backoff)
        except Exception:
            db.rollback()
            raise
    raise ConcurrentModification()
