"""
In-memory PIX simulator: used when provider credentials are absent and as the
per-request fallback when live creation fails.

Payments live in process memory. One issued by another process (bot, API, worker,
or this one before a restart) is re-registered from its stored record with restore().
Status is computed lazily on read: pending until auto_pay_seconds elapsed,
then paid; expired once the code TTL has passed unpaid.
"""
from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from pixshop.services.pix.brcode import build_brcode
from pixshop.services.pix.models import PixPayment, PixPaymentStatus
from pixshop.utils.currency import format_price
from pixshop.utils.pix_card import render_pix_card_data_uri

logger = logging.getLogger(__name__)

SIMULATED_ID_PREFIX = "ark_sim_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _SimulatedPayment:
    id: str
    external_id: str
    amount: Decimal
    currency: str
    description: str
    payment_code: str
    created_at: datetime
    expires_at: datetime
    status: str = "pending"
    paid_at: datetime | None = None


class PixSimulator:
    """Simulated PIX backend. Thread-safe; one instance per process."""

    def __init__(
        self,
        auto_pay_seconds: float | None = 10.0,
        ttl_minutes: int = 30,
        merchant_name: str = "PixShop",
        merchant_city: str = "SaoPaulo",
        clock: Callable[[], datetime] = _utcnow,
        render_qr: bool = True,
    ) -> None:
        self._auto_pay = timedelta(seconds=auto_pay_seconds) if auto_pay_seconds and auto_pay_seconds > 0 else None
        self._ttl = timedelta(minutes=ttl_minutes)
        self._merchant_name = merchant_name
        self._merchant_city = merchant_city
        self._clock = clock
        self._render_qr = render_qr
        self._payments: dict[str, _SimulatedPayment] = {}
        self._lock = threading.Lock()

    def __contains__(self, payment_id: object) -> bool:
        return isinstance(payment_id, str) and payment_id in self._payments

    def create(self, amount: Decimal, currency: str, description: str, external_id: str) -> PixPayment:
        now = self._clock()
        payment_id = SIMULATED_ID_PREFIX + secrets.token_hex(8)
        code = build_brcode(
            pix_key=payment_id,
            amount=amount,
            currency=currency,
            merchant_name=self._merchant_name,
            merchant_city=self._merchant_city,
            txid=external_id,
        )
        record = _SimulatedPayment(
            id=payment_id,
            external_id=external_id,
            amount=Decimal(amount),
            currency=currency,
            description=description,
            payment_code=code,
            created_at=now,
            expires_at=now + self._ttl,
        )
        with self._lock:
            self._payments[payment_id] = record

        qr = render_pix_card_data_uri(format_price(amount, currency), code) if self._render_qr else None
        logger.info(
            "pix_simulated_payment_created",
            extra={"payment_id": payment_id, "purchase_id": external_id, "mode": "simulated"},
        )
        return PixPayment(
            id=payment_id,
            payment_code=code,
            qr_image=qr,
            expires_at=record.expires_at,
            amount=record.amount,
            currency=currency,
            mode="simulated",
        )

    def restore(
        self,
        payment_id: str,
        external_id: str,
        amount: Decimal,
        currency: str,
        payment_code: str,
        expires_at: datetime,
    ) -> None:
        """
        Register a payment issued elsewhere. The issue time is expires_at minus the
        code TTL, so auto-pay and expiry follow the same timeline as in the issuing process.
        """
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        record = _SimulatedPayment(
            id=payment_id,
            external_id=external_id,
            amount=Decimal(str(amount)),
            currency=currency,
            description="",
            payment_code=payment_code or "",
            created_at=expires_at - self._ttl,
            expires_at=expires_at,
        )
        with self._lock:
            if payment_id in self._payments:
                return
            self._payments[payment_id] = record
        logger.info(
            "pix_simulated_payment_restored",
            extra={"payment_id": payment_id, "purchase_id": external_id, "mode": "simulated"},
        )

    def _advance(self, record: _SimulatedPayment) -> None:
        """Apply auto-pay / expiry for the current clock. Caller holds the lock."""
        if record.status != "pending":
            return
        now = self._clock()
        if self._auto_pay is not None:
            pay_at = record.created_at + self._auto_pay
            if now >= pay_at and pay_at < record.expires_at:
                record.status = "paid"
                record.paid_at = pay_at
                return
        if now >= record.expires_at:
            record.status = "expired"

    def status(self, payment_id: str) -> PixPaymentStatus | None:
        """Current status, None if the id was never issued here."""
        with self._lock:
            record = self._payments.get(payment_id)
            if record is None:
                return None
            self._advance(record)
            return PixPaymentStatus(id=record.id, status=record.status, paid_at=record.paid_at, mode="simulated")

    def confirm(self, payment_id: str) -> bool:
        """Force a pending payment to paid. False if unknown or already settled."""
        with self._lock:
            record = self._payments.get(payment_id)
            if record is None:
                return False
            self._advance(record)
            if record.status != "pending":
                return False
            record.status = "paid"
            record.paid_at = self._clock()
        logger.info("pix_simulated_payment_confirmed", extra={"payment_id": payment_id, "mode": "simulated"})
        return True

    def pending(self) -> list[str]:
        """Ids still waiting for payment."""
        with self._lock:
            result = []
            for record in self._payments.values():
                self._advance(record)
                if record.status == "pending":
                    result.append(record.id)
            return result
