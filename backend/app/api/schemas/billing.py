"""Schemas for credits, subscriptions and payment confirmations."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PaymentMethod = Literal["paypal", "stripe"]


class LedgerEntryOut(BaseModel):
    type: str
    balance: str
    amount: int
    description: str
    transaction_id: Optional[str]
    timestamp: Optional[datetime]


class SubscriptionOut(BaseModel):
    active: bool
    plan: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    auto_renew: bool


class CreditsResponse(BaseModel):
    subscription_credits: int
    purchased_credits: int
    total_credits: int
    subscription: SubscriptionOut
    history: List[LedgerEntryOut]


class PurchaseCreditsRequest(BaseModel):
    package_size: Literal["small", "medium", "large"]
    payment_method: PaymentMethod = "stripe"
    transaction_id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class SubscribeRequest(BaseModel):
    plan: Literal["basic", "premium"]
    renewal: bool = False
    payment_method: PaymentMethod = "stripe"
    transaction_id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class PaymentResponse(BaseModel):
    success: bool
    duplicate: bool = False
    transaction_id: str
    credits_added: int
    subscription_credits: int
    purchased_credits: int
    plan: str


class CancelResponse(BaseModel):
    success: bool
    credits_removed: int
    purchased_credits: int
    plan: str


class PaypalVerifyRequest(BaseModel):
    order_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    type: Literal["subscription", "renewal", "credits"]
    plan: Optional[Literal["basic", "premium"]] = None
    package_size: Optional[Literal["small", "medium", "large"]] = None


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    ignored: bool = False
