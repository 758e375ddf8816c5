"""
Payment provider webhook.

POST /webhooks/arkama: raw body signed with HMAC-SHA256 (hex) in X-Arkama-Signature.
Fails closed: no configured secret means every request is rejected.
Duplicates and unknown payments are acknowledged with 200 so the provider stops retrying.
"""
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from pixshop.db.session import get_db
from pixshop.schemas.webhooks import (
    EVENT_CONFIRMED,
    EVENT_EXPIRED,
    EVENT_FAILED,
    PaymentConfirmed,
    PaymentExpired,
    PaymentFailed,
    UnknownEvent,
    WebhookAck,
    WebhookEvent,
    parse_event,
)
from pixshop.services.delivery.queue import enqueue_delivery
from pixshop.services.pix import config as pix_config
from pixshop.services.purchases.service import PurchaseService
from pixshop.services.purchases.states import TransactionStatus
from pixshop.utils.metrics import webhook_events_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "X-Arkama-Signature"


def get_webhook_secret() -> str:
    return pix_config.get_webhook_secret()


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature.strip().lower())


def apply_event(db: Session, event: WebhookEvent) -> WebhookAck:
    """Run the ledger transition for one verified event. Returns the acknowledgement body."""
    if isinstance(event, UnknownEvent):
        logger.warning("webhook_event_unknown", extra={"event_type": event.kind})
        webhook_events_total.labels(event_type="unknown", result="ignored").inc()
        return WebhookAck(status="ignored", message="Unknown event")

    svc = PurchaseService(db)
    payment = event.payment
    tx = svc.find_transaction(payment.id)
    if tx is None and payment.external_id:
        tx = svc.find_transaction(payment.external_id)
    if tx is None:
        logger.warning(
            "webhook_payment_unknown",
            extra={"event_type": event.kind, "payment_id": payment.id},
        )
        webhook_events_total.labels(event_type=event.kind, result="ignored").inc()
        return WebhookAck(status="ignored", message="Transaction not found")

    if isinstance(event, PaymentConfirmed):
        outcome = svc.apply_payment_status(tx.id, TransactionStatus.PAID, paid_at=payment.paid_at)
        if outcome.needs_delivery:
            enqueue_delivery(outcome.purchase_id)
        message = "Payment confirmed" if outcome.newly_paid else "Already processed"
    elif isinstance(event, PaymentFailed):
        outcome = svc.apply_payment_status(
            tx.id, TransactionStatus.FAILED, failure_reason=event.reason or "Payment failed via webhook"
        )
        message = "Payment failure recorded"
    elif isinstance(event, PaymentExpired):
        outcome = svc.apply_payment_status(tx.id, TransactionStatus.EXPIRED)
        message = "Payment expiration recorded"
    else:  # pragma: no cover - closed union
        raise TypeError(f"Unhandled webhook event {type(event).__name__}")

    result = "applied" if outcome.changed else "duplicate"
    webhook_events_total.labels(event_type=event.kind, result=result).inc()
    logger.info(
        "webhook_event_processed",
        extra={
            "event_type": event.kind,
            "payment_id": payment.id,
            "transaction_id": tx.id,
            "purchase_id": outcome.purchase_id,
            "status": outcome.purchase_status,
        },
    )
    return WebhookAck(status="ok", message=message, purchase_id=outcome.purchase_id)


@router.post("/arkama", response_model=WebhookAck)
async def arkama_webhook(
    request: Request,
    x_arkama_signature: str | None = Header(default=None, alias=SIGNATURE_HEADER),
    secret: str = Depends(get_webhook_secret),
    db: Session = Depends(get_db),
):
    body = await request.body()

    if not secret:
        logger.error("webhook_secret_missing", extra={"path": request.url.path})
        webhook_events_total.labels(event_type="unverified", result="unauthorized").inc()
        raise HTTPException(401, "Webhook secret not configured")
    if not verify_signature(secret, body, x_arkama_signature):
        logger.warning("webhook_signature_invalid", extra={"path": request.url.path})
        webhook_events_total.labels(event_type="unverified", result="unauthorized").inc()
        raise HTTPException(401, "Invalid signature")

    try:
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("body must be a JSON object")
        event = parse_event(data)
    except (ValueError, ValidationError) as e:
        logger.warning("webhook_body_invalid", extra={"error": str(e)})
        webhook_events_total.labels(event_type="invalid", result="rejected").inc()
        raise HTTPException(400, "Malformed webhook body")

    return await run_in_threadpool(apply_event, db, event)


@router.get("/arkama")
def arkama_webhook_info() -> dict:
    """Endpoint check for the provider dashboard."""
    return {
        "status": "ok",
        "endpoint": "arkama-webhook",
        "events": [EVENT_CONFIRMED, EVENT_FAILED, EVENT_EXPIRED],
    }
