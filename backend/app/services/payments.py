"""Translate payment-provider callbacks into ledger confirmations."""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import Settings
from app.core.errors import InvalidSignature, ValidationError
from app.services.ledger import CREDIT_PACKAGES, PLAN_PRICES, PaymentConfirmation

logger = logging.getLogger(__name__)

STRIPE_PAYMENT_EVENT = "payment_intent.succeeded"
_PAYPAL_PURPOSES = {"subscription": "subscription", "renewal": "renewal", "credits": "purchase"}


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    """Split ``t=...,v1=...`` into the timestamp and the v1 signatures."""
    timestamp: Optional[int] = None
    signatures: List[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    settings: Settings,
    *,
    now: Optional[float] = None,
) -> None:
    secret = settings.stripe_webhook_secret
    if not secret:
        if settings.is_production:
            raise InvalidSignature("Webhook secret is not configured")
        logger.warning("Stripe webhook secret not configured; accepting unsigned event")
        return
    if not header:
        raise InvalidSignature("Missing Stripe-Signature header")

    timestamp, signatures = parse_signature_header(header)
    if timestamp is None or not signatures:
        raise InvalidSignature("Malformed Stripe-Signature header")
    current = time.time() if now is None else now
    if abs(current - timestamp) > settings.webhook_tolerance_seconds:
        raise InvalidSignature("Webhook timestamp outside tolerance")

    signed = f"{timestamp}.".encode("utf-8") + payload
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise InvalidSignature()


def confirmation_from_stripe_event(event: Dict[str, Any]) -> Optional[PaymentConfirmation]:
    """None for event types that carry no credits."""
    if event.get("type") != STRIPE_PAYMENT_EVENT:
        return None
    intent = (event.get("data") or {}).get("object") or {}
    metadata = intent.get("metadata") or {}
    user_id = metadata.get("user_id")
    if not user_id:
        raise ValidationError("metadata.user_id")
    external_id = intent.get("id")
    if not external_id:
        raise ValidationError("payment_intent.id")

    purpose = metadata.get("type") or "purchase"
    if purpose == "credits":
        purpose = "purchase"
    # Stripe amounts are integer cents.
    amount = Decimal(int(intent.get("amount") or 0)) / Decimal(100)
    return PaymentConfirmation(
        external_id=external_id,
        user_id=user_id,
        purpose=purpose,
        payment_method="stripe",
        amount=amount,
        plan=metadata.get("plan"),
        package_size=metadata.get("package_size"),
    )


def confirmation_from_paypal(
    user_id: str,
    *,
    order_id: Optional[str],
    order_status: Optional[str],
    kind: str,
    amount: Optional[Decimal] = None,
    plan: Optional[str] = None,
    package_size: Optional[str] = None,
) -> PaymentConfirmation:
    if not order_id:
        raise ValidationError("order_id")
    if (order_status or "").upper() != "COMPLETED":
        raise ValidationError("status", "must be COMPLETED")
    purpose = _PAYPAL_PURPOSES.get(kind)
    if purpose is None:
        raise ValidationError("type", "must be subscription, renewal or credits")
    return PaymentConfirmation(
        external_id=order_id,
        user_id=user_id,
        purpose=purpose,
        payment_method="paypal",
        amount=amount if amount is not None else list_price(purpose, plan, package_size),
        plan=plan,
        package_size=package_size,
    )


def list_price(purpose: str, plan: Optional[str], package_size: Optional[str]) -> Decimal:
    if purpose == "purchase":
        package = CREDIT_PACKAGES.get(package_size or "")
        return package.price if package else Decimal("0")
    return PLAN_PRICES.get(plan or "", Decimal("0"))
