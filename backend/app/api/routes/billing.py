"""Credits, subscriptions and payment confirmation routes."""
from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.api.deps import get_user
from app.api.schemas.billing import (
    CancelResponse,
    CreditsResponse,
    LedgerEntryOut,
    PaymentResponse,
    PaypalVerifyRequest,
    PurchaseCreditsRequest,
    SubscribeRequest,
    SubscriptionOut,
    WebhookAck,
)
from app.core.config import Settings, get_settings
from app.core.errors import DuplicateTransaction, NotFound, ValidationError
from app.db.deps import get_db
from app.db.models.user import User
from app.db.types import new_id
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import ledger
from app.services.ledger import PaymentConfirmation, PaymentOutcome
from app.services.notifications.hooks import notify_credits_granted, notify_subscription_cancelled
from app.services.payments import (
    confirmation_from_paypal,
    confirmation_from_stripe_event,
    list_price,
    verify_stripe_signature,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/billing/credits", response_model=CreditsResponse, tags=["billing"])
def get_credits(user: User = Depends(get_user)) -> CreditsResponse:
    subscription = user.subscription_credits or 0
    purchased = user.purchased_credits or 0
    return CreditsResponse(
        subscription_credits=subscription,
        purchased_credits=purchased,
        total_credits=subscription + purchased,
        subscription=SubscriptionOut(
            active=bool(user.subscription_active),
            plan=user.subscription_plan or "free",
            start_date=user.subscription_start,
            end_date=user.subscription_end,
            auto_renew=bool(user.subscription_auto_renew),
        ),
        history=[
            LedgerEntryOut(
                type=entry.entry_type,
                balance=entry.balance,
                amount=entry.amount,
                description=entry.description,
                transaction_id=entry.transaction_id,
                timestamp=entry.created_at,
            )
            for entry in reversed(user.ledger_entries)
        ],
    )


@router.post("/billing/credits", response_model=PaymentResponse, tags=["billing"])
def purchase_credits(
    payload: PurchaseCreditsRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PaymentResponse:
    confirmation = PaymentConfirmation(
        external_id=payload.transaction_id or f"txn_{new_id()}",
        user_id=user.id,
        purpose="purchase",
        payment_method=payload.payment_method,
        amount=list_price("purchase", None, payload.package_size),
        package_size=payload.package_size,
    )
    return _confirm(db, user, confirmation, settings, _request_id(http_request))


@router.post("/billing/subscribe", response_model=PaymentResponse, tags=["billing"])
def subscribe(
    payload: SubscribeRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PaymentResponse:
    purpose = "renewal" if payload.renewal else "subscription"
    confirmation = PaymentConfirmation(
        external_id=payload.transaction_id or f"txn_{new_id()}",
        user_id=user.id,
        purpose=purpose,
        payment_method=payload.payment_method,
        amount=list_price(purpose, payload.plan, None),
        plan=payload.plan,
    )
    return _confirm(db, user, confirmation, settings, _request_id(http_request))


@router.post("/billing/cancel", response_model=CancelResponse, tags=["billing"])
def cancel(
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CancelResponse:
    request_id = _request_id(http_request)
    previous_plan = user.subscription_plan
    with trace("billing.cancel", metadata={"plan": previous_plan}, user_id=user.id, request_id=request_id):
        entry = ledger.cancel_user_subscription(db, user.id)

    removed = -entry.amount
    log_metric("billing.subscription_cancelled", 1, metadata={"plan": previous_plan})
    notify_subscription_cancelled(
        settings,
        user_id=user.id,
        email=user.email,
        plan=previous_plan,
        credits_removed=removed,
        request_id=request_id,
    )
    return CancelResponse(
        success=True,
        credits_removed=removed,
        purchased_credits=user.purchased_credits or 0,
        plan=user.subscription_plan,
    )


@router.post("/billing/paypal/verify", response_model=PaymentResponse, tags=["billing"])
def verify_paypal(
    payload: PaypalVerifyRequest,
    http_request: Request,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PaymentResponse:
    """Record a client-captured PayPal order."""
    confirmation = confirmation_from_paypal(
        user.id,
        order_id=payload.order_id,
        order_status=payload.status,
        kind=payload.type,
        amount=payload.amount,
        plan=payload.plan,
        package_size=payload.package_size,
    )
    return _confirm(db, user, confirmation, settings, _request_id(http_request))


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/billing/webhooks/stripe", response_model=WebhookAck, tags=["billing"])
def stripe_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    """Signed provider callback; no bearer token."""
    verify_stripe_signature(body, stripe_signature, settings)
    try:
        event = json.loads(body)
    except ValueError as exc:
        raise ValidationError("body", "must be a JSON event") from exc
    if not isinstance(event, dict):
        raise ValidationError("body", "must be a JSON event")

    confirmation = confirmation_from_stripe_event(event)
    if confirmation is None:
        logger.info("Ignoring Stripe event type=%s", event.get("type"))
        return WebhookAck(ignored=True)

    request_id = _request_id(request)
    try:
        with trace(
            "billing.webhook.stripe",
            metadata={"purpose": confirmation.purpose, "external_id": confirmation.external_id},
            user_id=confirmation.user_id,
            request_id=request_id,
        ):
            outcome = ledger.confirm_payment(db, confirmation)
    except DuplicateTransaction:
        logger.info("Stripe event for %s already processed", confirmation.external_id)
        log_metric("billing.duplicate", 1, metadata={"method": "stripe"})
        return WebhookAck(duplicate=True)
    except NotFound:
        # Unknown users are acknowledged, not retried.
        logger.warning("Stripe event %s names unknown user=%s", confirmation.external_id, confirmation.user_id)
        return WebhookAck(ignored=True)

    _after_payment(settings, confirmation, outcome, request_id)
    return WebhookAck()


def _confirm(
    db: Session,
    user: User,
    confirmation: PaymentConfirmation,
    settings: Settings,
    request_id: Optional[str],
) -> PaymentResponse:
    try:
        with trace(
            "billing.confirm",
            metadata={
                "purpose": confirmation.purpose,
                "method": confirmation.payment_method,
                "external_id": confirmation.external_id,
            },
            user_id=user.id,
            request_id=request_id,
        ):
            outcome = ledger.confirm_payment(db, confirmation)
    except DuplicateTransaction:
        db.rollback()
        log_metric("billing.duplicate", 1, metadata={"method": confirmation.payment_method})
        return PaymentResponse(
            success=True,
            duplicate=True,
            transaction_id=confirmation.external_id,
            credits_added=0,
            subscription_credits=user.subscription_credits or 0,
            purchased_credits=user.purchased_credits or 0,
            plan=user.subscription_plan or "free",
        )

    _after_payment(settings, confirmation, outcome, request_id)
    return PaymentResponse(
        success=True,
        transaction_id=outcome.external_id,
        credits_added=outcome.credits_added,
        subscription_credits=outcome.subscription_credits,
        purchased_credits=outcome.purchased_credits,
        plan=outcome.plan,
    )


def _after_payment(
    settings: Settings,
    confirmation: PaymentConfirmation,
    outcome: PaymentOutcome,
    request_id: Optional[str],
) -> None:
    log_metric(
        "billing.credits_added",
        outcome.credits_added,
        metadata={"purpose": confirmation.purpose, "method": confirmation.payment_method},
    )
    notify_credits_granted(
        settings,
        user_id=confirmation.user_id,
        email=outcome.user_email,
        credits=outcome.credits_added,
        description=f"{outcome.entry_type} via {confirmation.payment_method}",
        request_id=request_id,
    )


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)
