"""Fire-and-forget billing emails."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from app.core.config import Settings
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.notifications.base import NotificationResult, NotificationService
from app.services.notifications.factory import get_notification_service

logger = logging.getLogger(__name__)


def notify_credits_granted(
    settings: Settings,
    *,
    user_id: str,
    email: Optional[str],
    credits: int,
    description: str,
    request_id: str | None,
) -> NotificationResult:
    return _dispatch(
        settings,
        kind="credits_granted",
        user_id=user_id,
        email=email,
        request_id=request_id,
        send=lambda service, to: service.notify_credits_granted(
            user_id=user_id,
            email=to,
            credits=credits,
            description=description,
            request_id=request_id,
        ),
    )


def notify_subscription_cancelled(
    settings: Settings,
    *,
    user_id: str,
    email: Optional[str],
    plan: str,
    credits_removed: int,
    request_id: str | None,
) -> NotificationResult:
    return _dispatch(
        settings,
        kind="subscription_cancelled",
        user_id=user_id,
        email=email,
        request_id=request_id,
        send=lambda service, to: service.notify_subscription_cancelled(
            user_id=user_id,
            email=to,
            plan=plan,
            credits_removed=credits_removed,
            request_id=request_id,
        ),
    )


def _dispatch(
    settings: Settings,
    *,
    kind: str,
    user_id: str,
    email: Optional[str],
    request_id: str | None,
    send: Callable[[NotificationService, str], NotificationResult],
) -> NotificationResult:
    if not settings.notifications_enabled:
        result = NotificationResult(status="skipped", reason="notifications disabled")
    elif not email:
        result = NotificationResult(status="skipped", reason="no email address")
    else:
        service = get_notification_service(settings.notifications_provider)
        with trace(
            f"notifications.{kind}",
            metadata={"provider": settings.notifications_provider},
            user_id=user_id,
            request_id=request_id,
        ):
            try:
                result = send(service, email)
            except Exception as exc:
                # Delivery is best effort; the billing change is already committed.
                logger.warning("Email %s for user=%s failed: %s", kind, user_id, exc)
                result = NotificationResult(status="failed", reason=str(exc))

    log_metric(f"notifications.{result.status}", 1, metadata={"kind": kind, "provider": settings.notifications_provider})
    return result
