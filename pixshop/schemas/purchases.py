"""
Operator RPC schemas for purchases.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    payment_method: str
    amount: Decimal
    currency: str
    external_id: str | None = None
    payment_mode: str | None = None
    pix_code: str | None = None
    pix_expires_at: datetime | None = None
    paid_at: datetime | None = None
    failed_at: datetime | None = None
    failure_reason: str | None = None
    refunded_at: datetime | None = None
    refund_reason: str | None = None
    created_at: datetime


class PurchaseOut(BaseModel):
    """Purchase list item."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    telegram_user_id: int
    telegram_username: str | None = None
    telegram_first_name: str | None = None
    creator_id: str
    product_id: str
    product_snapshot: dict[str, Any]
    product_type: str
    amount: Decimal
    currency: str
    status: str
    transaction_id: str | None = None
    delivery_started_at: datetime | None = None
    delivered_at: datetime | None = None
    access_expires_at: datetime | None = None
    sent_messages: list[dict[str, Any]] = []
    batches_sent: int = 0
    expiration_notified_7_days: bool = False
    expiration_notified_1_day: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class PurchaseDetailOut(PurchaseOut):
    """Purchase with its transaction."""
    transaction: TransactionOut | None = None


class PurchaseListOut(BaseModel):
    items: list[PurchaseOut]
    total: int
    page: int
    limit: int
    pages: int


class PeriodStats(BaseModel):
    count: int
    revenue: Decimal


class PurchaseStatsOut(BaseModel):
    total: int = Field(description="Paid + completed purchases")
    revenue: Decimal
    by_status: dict[str, int]
    last_24h: PeriodStats


class RefundIn(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class PaymentCheckOut(BaseModel):
    purchase_id: str
    purchase_status: str
    transaction_status: str | None = None
    newly_paid: bool
    delivery_enqueued: bool = False
