"""
DTO gateway: PixCustomer (input), PixPayment (creation result), PixPaymentStatus (poll result).
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


GatewayStatus = Literal["pending", "processing", "paid", "failed", "expired"]
GatewayMode = Literal["live", "simulated"]


class PixCustomer(BaseModel):
    """Optional buyer data forwarded to the provider."""

    name: str | None = None
    email: str | None = None
    document: str | None = None  # CPF
    phone: str | None = None

    model_config = {"frozen": True}


class PixPayment(BaseModel):
    """Issued payment request: provider id, copy-and-paste code, QR, expiry."""

    id: str = Field(..., description="Provider payment id (stored as Transaction.external_id)")
    payment_code: str = Field(..., description="PIX copy-and-paste (EMV) payload")
    qr_image: str | None = Field(None, description="QR as URL or data:image/png;base64 URI")
    expires_at: datetime
    amount: Decimal
    currency: str
    mode: GatewayMode
    raw: dict | None = Field(None, description="Provider response body, live mode only")

    model_config = {"frozen": True}


class PixPaymentStatus(BaseModel):
    """Status mapped into the internal enumeration."""

    id: str
    status: GatewayStatus
    paid_at: datetime | None = None
    mode: GatewayMode

    model_config = {"frozen": True}

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"
