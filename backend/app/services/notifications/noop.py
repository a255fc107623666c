"""No-op notification provider (logs only)."""
from __future__ import annotations

import logging

from app.services.notifications.base import NotificationResult, NotificationService


logger = logging.getLogger(__name__)


class NoopNotificationService(NotificationService):
    def notify_credits_granted(
        self,
        *,
        user_id: str,
        email: str,
        credits: int,
        description: str,
        request_id: str | None,
    ) -> NotificationResult:
        logger.info("Email queued (noop) credits_granted user=%s to=%s credits=%s", user_id, email, credits)
        return NotificationResult(status="noop", reason="notification provider is noop")

    def notify_subscription_cancelled(
        self,
        *,
        user_id: str,
        email: str,
        plan: str,
        credits_removed: int,
        request_id: str | None,
    ) -> NotificationResult:
        logger.info(
            "Email queued (noop) subscription_cancelled user=%s to=%s plan=%s removed=%s",
            user_id,
            email,
            plan,
            credits_removed,
        )
        return NotificationResult(status="noop", reason="notification provider is noop")
