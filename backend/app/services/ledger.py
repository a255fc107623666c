"""Credit balances, the append-only ledger and payment reconciliation."""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import DuplicateTransaction, InsufficientCredits, NotFound, ValidationError
from app.db.models.credit_ledger import (
    BALANCE_PURCHASED,
    BALANCE_SUBSCRIPTION,
    LEDGER_ENTRY_TYPES,
    CreditLedgerEntry,
)
from app.db.models.transaction import Transaction
from app.db.models.user import User
from app.db.unit_of_work import run_atomic, touch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditPackage:
    credits: int
    price: Decimal


PLAN_CREDITS: Dict[str, int] = {"basic": 100, "premium": 250}
PLAN_PRICES: Dict[str, Decimal] = {"basic": Decimal("9.99"), "premium": Decimal("19.99")}
CREDIT_PACKAGES: Dict[str, CreditPackage] = {
    "small": CreditPackage(50, Decimal("4.99")),
    "medium": CreditPackage(100, Decimal("8.99")),
    "large": CreditPackage(250, Decimal("19.99")),
}
PAYMENT_METHODS = ("paypal", "stripe")

_DEFAULT_BALANCE = {
    "subscription": BALANCE_SUBSCRIPTION,
    "renewal": BALANCE_SUBSCRIPTION,
    "purchase": BALANCE_PURCHASED,
}
_BALANCE_COLUMNS = {
    BALANCE_SUBSCRIPTION: "subscription_credits",
    BALANCE_PURCHASED: "purchased_credits",
}


@dataclass
class PaymentConfirmation:
    external_id: str
    user_id: str
    purpose: str
    payment_method: str
    amount: Decimal
    plan: Optional[str] = None
    package_size: Optional[str] = None


@dataclass
class PaymentOutcome:
    external_id: str
    entry_type: str
    credits_added: int
    subscription_credits: int
    purchased_credits: int
    plan: str
    user_email: Optional[str]


def apply_ledger_entry(
    user: User,
    entry_type: str,
    amount: int,
    description: str,
    *,
    balance: Optional[str] = None,
    transaction_id: Optional[str] = None,
) -> CreditLedgerEntry:
    """Move one balance and append the matching history entry.

    This is the only code path that writes ``subscription_credits`` or
    ``purchased_credits``; the caller commits both together.
    """
    if entry_type not in LEDGER_ENTRY_TYPES:
        raise ValidationError("type", f"must be one of {', '.join(LEDGER_ENTRY_TYPES)}")
    target = balance or _DEFAULT_BALANCE.get(entry_type)
    if target not in _BALANCE_COLUMNS:
        raise ValidationError("balance", f"must be given for {entry_type} entries")

    column = _BALANCE_COLUMNS[target]
    current = getattr(user, column) or 0
    updated = current + int(amount)
    if updated < 0:
        raise InsufficientCredits(required=-int(amount), available=current)

    setattr(user, column, updated)
    entry = CreditLedgerEntry(
        entry_type=entry_type,
        balance=target,
        amount=int(amount),
        description=description,
        transaction_id=transaction_id,
    )
    user.ledger_entries.append(entry)
    return entry


def replay_balances(entries: List[CreditLedgerEntry]) -> Dict[str, int]:
    """Recompute both balances from history alone."""
    totals = {BALANCE_SUBSCRIPTION: 0, BALANCE_PURCHASED: 0}
    for entry in entries:
        totals[entry.balance] = totals.get(entry.balance, 0) + entry.amount
    return totals


def grant_subscription(
    user: User,
    plan: str,
    *,
    renewal: bool = False,
    now: Optional[datetime] = None,
    transaction_id: Optional[str] = None,
) -> CreditLedgerEntry:
    if plan not in PLAN_CREDITS:
        raise ValidationError("plan", "must be basic or premium")
    now = now or datetime.now(timezone.utc)
    credits = PLAN_CREDITS[plan]

    current_end = _as_aware(user.subscription_end)
    if renewal and current_end and current_end > now:
        start = current_end
    else:
        start = now
        user.subscription_start = now
    user.subscription_end = add_one_month(start)
    user.subscription_active = True
    user.subscription_plan = plan
    user.subscription_auto_renew = True

    entry_type = "renewal" if renewal else "subscription"
    verb = "Renewed" if renewal else "Subscribed to"
    return apply_ledger_entry(
        user,
        entry_type,
        credits,
        f"{verb} {plan} plan - {credits} credits",
        transaction_id=transaction_id,
    )


def grant_purchase(user: User, package_size: str, *, transaction_id: Optional[str] = None) -> CreditLedgerEntry:
    package = CREDIT_PACKAGES.get(package_size)
    if package is None:
        raise ValidationError("package_size", "must be small, medium or large")
    return apply_ledger_entry(
        user,
        "purchase",
        package.credits,
        f"Purchased {package_size} credit package - {package.credits} credits",
        transaction_id=transaction_id,
    )


def cancel_subscription(user: User) -> CreditLedgerEntry:
    """Zero the subscription balance, downgrade to free, keep purchased credits."""
    if not user.subscription_plan or user.subscription_plan == "free":
        raise ValidationError("subscription", "is not active")
    plan = user.subscription_plan
    removed = user.subscription_credits or 0
    entry = apply_ledger_entry(
        user,
        "subscription",
        -removed,
        f"Cancelled {plan} subscription - {removed} credits removed",
        balance=BALANCE_SUBSCRIPTION,
    )
    user.subscription_plan = "free"
    user.subscription_active = False
    user.subscription_auto_renew = False
    return entry


def consume_credits(user: User, amount: int, description: str) -> List[CreditLedgerEntry]:
    """Spend subscription credits first, then purchased credits."""
    if amount <= 0:
        return []
    subscription = user.subscription_credits or 0
    purchased = user.purchased_credits or 0
    if subscription + purchased < amount:
        raise InsufficientCredits(required=amount, available=subscription + purchased)

    entries = []
    from_subscription = min(subscription, amount)
    if from_subscription:
        entries.append(apply_ledger_entry(user, "usage", -from_subscription, description, balance=BALANCE_SUBSCRIPTION))
    remainder = amount - from_subscription
    if remainder:
        entries.append(apply_ledger_entry(user, "usage", -remainder, description, balance=BALANCE_PURCHASED))
    return entries


def cancel_user_subscription(db: Session, user_id: str) -> CreditLedgerEntry:
    def _apply(session: Session) -> CreditLedgerEntry:
        user = _load_user(session, user_id)
        entry = cancel_subscription(user)
        touch(user)
        return entry

    return run_atomic(db, _apply)


def confirm_payment(db: Session, confirmation: PaymentConfirmation, *, now: Optional[datetime] = None) -> PaymentOutcome:
    """Record a completed payment and grant its credits exactly once.

    A repeated confirmation for the same external id raises ``DuplicateTransaction``
    without touching the ledger.
    """
    if confirmation.payment_method not in PAYMENT_METHODS:
        raise ValidationError("payment_method", "must be paypal or stripe")
    existing = db.query(Transaction.id).filter(Transaction.external_id == confirmation.external_id).first()
    if existing:
        raise DuplicateTransaction(confirmation.external_id)

    def _apply(session: Session) -> PaymentOutcome:
        user = _load_user(session, confirmation.user_id)
        if confirmation.purpose in ("subscription", "renewal"):
            entry = grant_subscription(
                user,
                confirmation.plan or "",
                renewal=confirmation.purpose == "renewal",
                now=now,
                transaction_id=confirmation.external_id,
            )
        elif confirmation.purpose == "purchase":
            entry = grant_purchase(user, confirmation.package_size or "", transaction_id=confirmation.external_id)
        else:
            raise ValidationError("type", "must be subscription, renewal or purchase")

        session.add(
            Transaction(
                external_id=confirmation.external_id,
                user_id=user.id,
                user_email=user.email,
                transaction_type=confirmation.purpose,
                plan=confirmation.plan if confirmation.purpose != "purchase" else None,
                package_size=confirmation.package_size if confirmation.purpose == "purchase" else None,
                payment_method=confirmation.payment_method,
                amount=confirmation.amount,
                credits_added=entry.amount,
                description=entry.description,
                status="completed",
            )
        )
        touch(user)
        # Surface a unique-key race here rather than at commit.
        session.flush()
        return PaymentOutcome(
            external_id=confirmation.external_id,
            entry_type=entry.entry_type,
            credits_added=entry.amount,
            subscription_credits=user.subscription_credits,
            purchased_credits=user.purchased_credits,
            plan=user.subscription_plan,
            user_email=user.email,
        )

    try:
        outcome = run_atomic(db, _apply)
    except IntegrityError as exc:
        raise DuplicateTransaction(confirmation.external_id) from exc
    logger.info(
        "Payment %s applied: %s +%s credits for user=%s",
        confirmation.external_id,
        outcome.entry_type,
        outcome.credits_added,
        confirmation.user_id,
    )
    return outcome


def add_one_month(moment: datetime) -> datetime:
    year = moment.year + (1 if moment.month == 12 else 0)
    month = 1 if moment.month == 12 else moment.month + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _load_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user
