"""Notification service factory."""
from __future__ import annotations

import logging
from functools import lru_cache

from app.services.notifications.base import NotificationService
from app.services.notifications.noop import NoopNotificationService

logger = logging.getLogger(__name__)


@lru_cache
def get_notification_service(provider: str = "noop") -> NotificationService:
    if provider.lower() != "noop":
        logger.warning("Unknown notification provider %s; using noop", provider)
    return NoopNotificationService()
