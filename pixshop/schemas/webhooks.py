"""
Arkama webhook bodies.

The event kind is a closed set; every known kind has its own model and anything
else parses to UnknownEvent, which the route acknowledges without mutation.
The provider sends the kind under "event"; "type" is accepted as well.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


EVENT_CONFIRMED = "payment.confirmed"
EVENT_FAILED = "payment.failed"
EVENT_EXPIRED = "payment.expired"


class WebhookPayment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    external_id: str | None = Field(default=None, alias="externalId")
    status: str | None = None
    amount: Decimal | None = None
    paid_at: datetime | None = Field(default=None, alias="paidAt")


class _PaymentEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment: WebhookPayment


class PaymentConfirmed(_PaymentEvent):
    kind: Literal["payment.confirmed"] = EVENT_CONFIRMED


class PaymentFailed(_PaymentEvent):
    kind: Literal["payment.failed"] = EVENT_FAILED
    reason: str | None = None


class PaymentExpired(_PaymentEvent):
    kind: Literal["payment.expired"] = EVENT_EXPIRED


class UnknownEvent(BaseModel):
    kind: str | None = None


WebhookEvent = PaymentConfirmed | PaymentFailed | PaymentExpired | UnknownEvent

EVENT_MODELS: dict[str, type[_PaymentEvent]] = {
    EVENT_CONFIRMED: PaymentConfirmed,
    EVENT_FAILED: PaymentFailed,
    EVENT_EXPIRED: PaymentExpired,
}


def parse_event(body: dict[str, Any]) -> WebhookEvent:
    """Raises pydantic.ValidationError when a known kind carries a malformed payment."""
    kind = body.get("event") or body.get("type")
    model = EVENT_MODELS.get(kind) if isinstance(kind, str) else None
    if model is None:
        return UnknownEvent(kind=kind if isinstance(kind, str) else None)
    return model.model_validate(body)


class WebhookAck(BaseModel):
    status: Literal["ok", "ignored"]
    message: str
    purchase_id: str | None = None
