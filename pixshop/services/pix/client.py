"""
PIX gateway client: issues payment requests and reads their status.

Live mode talks to the Arkama REST API over httpx (sync: used from Celery workers,
FastAPI sync routes and the bot via asyncio.to_thread). Without a usable API key
every call goes to the in-process simulator.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

import httpx
import pybreaker

from pixshop.services.pix.errors import PixPaymentNotFound, PixProviderError
from pixshop.services.pix.models import PixCustomer, PixPayment, PixPaymentStatus
from pixshop.services.pix.simulator import SIMULATED_ID_PREFIX, PixSimulator
from pixshop.utils.currency import to_minor_units
from pixshop.utils.metrics import (
    pix_payments_created_total,
    pix_request_duration_seconds,
    pix_status_checks_total,
)

logger = logging.getLogger(__name__)

# Provider status -> internal status
PROVIDER_STATUS_MAP = {
    "PENDING": "pending",
    "WAITING_PAYMENT": "pending",
    "CREATED": "pending",
    "PROCESSING": "processing",
    "IN_ANALYSIS": "processing",
    "PAID": "paid",
    "APPROVED": "paid",
    "CONFIRMED": "paid",
    "COMPLETED": "paid",
    "REFUSED": "failed",
    "FAILED": "failed",
    "CANCELED": "failed",
    "CANCELLED": "failed",
    "REFUNDED": "failed",
    "CHARGEBACK": "failed",
    "EXPIRED": "expired",
}


def map_provider_status(raw: str | None) -> str:
    """Unknown provider statuses read as pending (never as paid)."""
    mapped = PROVIDER_STATUS_MAP.get((raw or "").upper())
    if mapped is None:
        logger.warning("pix_unknown_provider_status", extra={"status": raw})
        return "pending"
    return mapped


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class PixGatewayClient:
    """
    Gateway over the PIX provider.

    create_payment falls back to the simulator when the live call fails, so a buyer
    always gets a payable code. check_status never falls back: a live id reports
    what the provider says or raises PixProviderError.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        simulator: PixSimulator,
        min_key_length: int = 16,
        timeout: float = 15.0,
        code_ttl_minutes: int = 30,
        breaker: pybreaker.CircuitBreaker | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key or ""
        self._min_key_length = min_key_length
        self._timeout = timeout
        self._code_ttl = timedelta(minutes=code_ttl_minutes)
        self._simulator = simulator
        self._breaker = breaker
        self._client = http_client

    @property
    def live(self) -> bool:
        return len(self._api_key) >= self._min_key_length

    @property
    def mode(self) -> str:
        return "live" if self.live else "simulated"

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _call(self, fn, *args, **kwargs):
        """Run a live request through the circuit breaker, if any."""
        if self._breaker is None:
            return fn(*args, **kwargs)
        return self._breaker.call(fn, *args, **kwargs)

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json: dict | None = None,
        missing_ok: bool = False,
    ) -> dict | None:
        """With missing_ok a 404 returns None, so the breaker counts it as a success."""
        start = time.time()
        try:
            resp = self.client.request(method, f"{self._api_url}{path}", headers=self._headers(), json=json)
        except httpx.HTTPError as e:
            raise PixProviderError(f"{operation}: {type(e).__name__}: {e}") from e
        finally:
            pix_request_duration_seconds.labels(operation=operation).observe(time.time() - start)
        if resp.status_code == 404:
            if missing_ok:
                return None
            raise PixPaymentNotFound(f"{operation}: not found", status_code=404)
        if resp.status_code >= 400:
            raise PixProviderError(f"{operation}: HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError as e:
            raise PixProviderError(f"{operation}: invalid JSON body") from e
        if not isinstance(body, dict):
            raise PixProviderError(f"{operation}: unexpected body type")
        return body.get("data") if isinstance(body.get("data"), dict) else body

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_payment(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        external_id: str,
        customer: PixCustomer | None = None,
    ) -> PixPayment:
        """Issue a PIX payment request for external_id (our Purchase id)."""
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e
        if amount <= 0:
            raise ValueError("amount must be positive")
        if not external_id:
            raise ValueError("external_id is required")

        if not self.live:
            payment = self._simulator.create(amount, currency, description, external_id)
            pix_payments_created_total.labels(mode="simulated").inc()
            return payment

        try:
            payment = self._call(self._create_live, amount, currency, description, external_id, customer)
        except (PixProviderError, pybreaker.CircuitBreakerError) as e:
            logger.warning(
                "pix_create_fallback_simulated",
                extra={"purchase_id": external_id, "error": str(e) or type(e).__name__},
            )
            payment = self._simulator.create(amount, currency, description, external_id)
            pix_payments_created_total.labels(mode="simulated").inc()
            return payment

        pix_payments_created_total.labels(mode="live").inc()
        logger.info(
            "pix_payment_created",
            extra={"payment_id": payment.id, "purchase_id": external_id, "mode": "live"},
        )
        return payment

    def _create_live(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        external_id: str,
        customer: PixCustomer | None,
    ) -> PixPayment:
        value = to_minor_units(amount)
        payload: dict = {
            "value": value,
            "paymentMethod": "pix",
            "externalId": external_id,
            "items": [
                {"title": description[:120], "unitPrice": value, "quantity": 1, "isDigital": True},
            ],
        }
        if customer is not None:
            payload["customer"] = customer.model_dump(exclude_none=True)

        data = self._request("POST", "/orders", "create", json=payload)
        payment_id = data.get("id")
        pix = data.get("pix") or {}
        code = pix.get("payload") or pix.get("qrCode") or data.get("pixCode")
        if not payment_id or not code:
            raise PixProviderError("create: response without id or pix payload")

        expires_at = _parse_datetime(pix.get("expirationDate") or data.get("expiresAt"))
        if expires_at is None:
            expires_at = datetime.now(timezone.utc) + self._code_ttl
        return PixPayment(
            id=str(payment_id),
            payment_code=code,
            qr_image=pix.get("qrCodeImage") or pix.get("encodedImage"),
            expires_at=expires_at,
            amount=amount,
            currency=currency,
            mode="live",
            raw=data,
        )

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def check_status(self, payment_id: str) -> PixPaymentStatus:
        """Current status of a payment issued by this gateway."""
        if payment_id in self._simulator:
            status = self._simulator.status(payment_id)
            pix_status_checks_total.labels(mode="simulated", status=status.status).inc()
            return status
        if not self.live or payment_id.startswith(SIMULATED_ID_PREFIX):
            raise PixPaymentNotFound(f"Unknown simulated payment: {payment_id}")

        try:
            data = self._call(self._request, "GET", f"/orders/{payment_id}", "status", missing_ok=True)
        except pybreaker.CircuitBreakerError as e:
            raise PixProviderError("status: circuit open") from e
        if data is None:
            raise PixPaymentNotFound(f"status: {payment_id} not found", status_code=404)
        status = map_provider_status(data.get("status"))
        pix_status_checks_total.labels(mode="live", status=status).inc()
        return PixPaymentStatus(
            id=payment_id,
            status=status,
            paid_at=_parse_datetime(data.get("paidAt")) if status == "paid" else None,
            mode="live",
        )

    def is_simulated(self, payment_id: str) -> bool:
        """True for any simulated id, whichever process issued it."""
        return payment_id in self._simulator or payment_id.startswith(SIMULATED_ID_PREFIX)

    def restore_simulated(
        self,
        payment_id: str,
        external_id: str,
        amount: Decimal,
        currency: str,
        payment_code: str | None,
        expires_at: datetime | None,
    ) -> bool:
        """Re-register a simulated payment this process has not seen. False when nothing was restored."""
        if payment_id in self._simulator or expires_at is None:
            return False
        if not payment_id.startswith(SIMULATED_ID_PREFIX):
            return False
        self._simulator.restore(payment_id, external_id, amount, currency, payment_code or "", expires_at)
        return True

    def confirm_manually(self, payment_id: str) -> bool:
        """Mark a simulated payment paid. Live payments cannot be confirmed here."""
        if payment_id not in self._simulator:
            logger.warning("pix_manual_confirm_rejected", extra={"payment_id": payment_id})
            return False
        return self._simulator.confirm(payment_id)

    def close(self) -> None:
        """Close httpx client."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Failed to close client", extra={"error": str(e)})
            finally:
                self._client = None
