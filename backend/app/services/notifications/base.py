"""Notification service interface."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class NotificationResult:
    status: str
    reason: str


class NotificationService:
    """Base interface for transactional email providers."""

    def notify_credits_granted(
        self,
        *,
        user_id: str,
        email: str,
        credits: int,
        description: str,
        request_id: str | None,
    ) -> NotificationResult:
        raise NotImplementedError

    def notify_subscription_cancelled(
        self,
        *,
        user_id: str,
        email: str,
        plan: str,
        credits_removed: int,
        request_id: str | None,
    ) -> NotificationResult:
        raise NotImplementedError
