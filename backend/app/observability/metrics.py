"""Lightweight metrics helpers."""
from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict, Optional

from app.observability.tracing import trace

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric as a short Opik trace; silent when tracing is off."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)
    with trace(f"metric:{name}", metadata=payload):
        pass


def log_latency(name: str, started_at: float, metadata: Optional[Dict[str, Any]] = None) -> float:
    """Record elapsed milliseconds since ``started_at`` (a perf_counter value)."""
    elapsed_ms = (perf_counter() - started_at) * 1000
    log_metric(name, round(elapsed_ms, 2), metadata=metadata)
    return elapsed_ms
