"""
Operator API for the dashboard: purchases list / detail / stats, manual complete and
refund, redelivery of stuck purchases, buyer history, provider re-check and confirmation of simulated payments.
All mutations go through PurchaseService, the same transitions the bot and the webhook use.
Order: /purchases/stats and /purchases/history before /purchases/{id}.
"""
import logging
import math
import secrets

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from pixshop.core.config import settings
from pixshop.db.session import get_db
from pixshop.schemas.purchases import (
    PaymentCheckOut,
    PurchaseDetailOut,
    PurchaseListOut,
    PurchaseOut,
    PurchaseStatsOut,
    RefundIn,
    TransactionOut,
)
from pixshop.services.audit.service import AuditAction, AuditService
from pixshop.services.delivery.queue import enqueue_delivery
from pixshop.services.pix import PixGatewayClient, PixProviderError
from pixshop.services.purchases.errors import InvalidTransition, PurchaseError
from pixshop.services.purchases.service import PaymentOutcome, PurchaseService
from pixshop.services.purchases.states import PurchaseStatus

logger = logging.getLogger(__name__)


def require_admin(x_admin_key: str | None = Header(default=None, alias="X-Admin-Key")) -> str:
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(401, "Invalid admin key")
    return "operator"


def get_gateway(request: Request) -> PixGatewayClient:
    return request.app.state.pix_gateway


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _error(e: PurchaseError) -> HTTPException:
    return HTTPException(e.status_code, detail={"reason": e.reason, "message": str(e)})


def _check_out(outcome: PaymentOutcome) -> PaymentCheckOut:
    enqueued = False
    if outcome.needs_delivery:
        enqueue_delivery(outcome.purchase_id)
        enqueued = True
    return PaymentCheckOut(
        purchase_id=outcome.purchase_id,
        purchase_status=outcome.purchase_status,
        transaction_status=outcome.transaction_status,
        newly_paid=outcome.newly_paid,
        delivery_enqueued=enqueued,
    )


@router.get("/purchases", response_model=PurchaseListOut)
def purchases_list(
    db: Session = Depends(get_db),
    status: str | None = Query(None),
    creator_id: str | None = None,
    telegram_user_id: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    if status is not None and status not in PurchaseStatus.ALL:
        raise HTTPException(400, detail={"reason": "invalid_status", "message": f"Unknown status {status}"})
    items, total = PurchaseService(db).list_purchases(
        status=status,
        creator_id=creator_id,
        telegram_user_id=telegram_user_id,
        page=page,
        limit=limit,
    )
    return PurchaseListOut(
        items=[PurchaseOut.model_validate(p) for p in items],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/purchases/stats", response_model=PurchaseStatsOut)
def purchases_stats(db: Session = Depends(get_db)):
    return PurchaseService(db).stats()


@router.get("/purchases/history/{telegram_user_id}", response_model=PurchaseListOut)
def purchases_history(
    telegram_user_id: int,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    items, total = PurchaseService(db).user_history(telegram_user_id, page=page, limit=limit)
    return PurchaseListOut(
        items=[PurchaseOut.model_validate(p) for p in items],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/purchases/{purchase_id}", response_model=PurchaseDetailOut)
def purchases_get(purchase_id: str, db: Session = Depends(get_db)):
    svc = PurchaseService(db)
    try:
        purchase = svc.get_or_raise(purchase_id)
    except PurchaseError as e:
        raise _error(e)
    tx = svc.get_transaction(purchase)
    out = PurchaseDetailOut.model_validate(purchase)
    out.transaction = TransactionOut.model_validate(tx) if tx is not None else None
    return out


@router.post("/purchases/{purchase_id}/complete", response_model=PurchaseOut)
def purchases_complete(purchase_id: str, db: Session = Depends(get_db)):
    try:
        purchase = PurchaseService(db).complete(purchase_id)
    except PurchaseError as e:
        raise _error(e)
    AuditService(db).purchase_action(AuditAction.PURCHASE_COMPLETE, purchase_id)
    logger.info("operator_purchase_completed", extra={"purchase_id": purchase_id})
    return purchase


@router.post("/purchases/{purchase_id}/refund", response_model=PurchaseOut)
def purchases_refund(
    purchase_id: str,
    payload: RefundIn | None = Body(default=None),
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload is not None else None
    try:
        purchase = PurchaseService(db).refund(purchase_id, reason=reason)
    except PurchaseError as e:
        raise _error(e)
    AuditService(db).purchase_action(AuditAction.PURCHASE_REFUND, purchase_id, {"reason": reason})
    logger.info("operator_purchase_refunded", extra={"purchase_id": purchase_id, "reason": reason})
    return purchase


@router.post("/purchases/{purchase_id}/redeliver", response_model=PurchaseOut)
def purchases_redeliver(purchase_id: str, db: Session = Depends(get_db)):
    """Re-enqueue delivery of a purchase stuck in paid (broker down at the paid edge, retries exhausted).
    Delivery resumes after the batches already recorded."""
    try:
        purchase = PurchaseService(db).get_or_raise(purchase_id)
    except PurchaseError as e:
        raise _error(e)
    if purchase.status != PurchaseStatus.PAID:
        raise _error(InvalidTransition(f"Purchase {purchase_id} is {purchase.status}, not paid"))
    enqueue_delivery(purchase_id)
    AuditService(db).purchase_action(AuditAction.PURCHASE_REDELIVER, purchase_id)
    logger.info("operator_purchase_redelivered", extra={"purchase_id": purchase_id})
    return purchase


@router.post("/purchases/{purchase_id}/recheck", response_model=PaymentCheckOut)
def purchases_recheck(
    purchase_id: str,
    db: Session = Depends(get_db),
    gateway: PixGatewayClient = Depends(get_gateway),
):
    """Poll the provider once, same path as the buyer's «Já transferi»."""
    try:
        outcome = PurchaseService(db).refresh_payment_status(purchase_id, gateway)
    except PurchaseError as e:
        raise _error(e)
    except PixProviderError as e:
        logger.warning("operator_recheck_provider_error", extra={"purchase_id": purchase_id, "error": str(e)})
        raise HTTPException(502, detail={"reason": "provider_unavailable", "message": str(e)})
    return _check_out(outcome)


@router.post("/purchases/{purchase_id}/confirm", response_model=PaymentCheckOut)
def purchases_confirm_simulated(
    purchase_id: str,
    db: Session = Depends(get_db),
    gateway: PixGatewayClient = Depends(get_gateway),
):
    """
    Mark a simulated payment as paid. Live payments cannot be confirmed by hand.
    Works for payments issued by the bot or another process: the stored transaction decides.
    """
    svc = PurchaseService(db)
    try:
        outcome = svc.confirm_simulated(purchase_id, gateway)
    except PurchaseError as e:
        raise _error(e)
    except PixProviderError as e:
        logger.warning("operator_confirm_provider_error", extra={"purchase_id": purchase_id, "error": str(e)})
        raise HTTPException(502, detail={"reason": "provider_unavailable", "message": str(e)})
    AuditService(db).purchase_action(
        AuditAction.PAYMENT_CONFIRM_SIMULATED,
        purchase_id,
        {"transaction_status": outcome.transaction_status, "newly_paid": outcome.newly_paid},
    )
    return _check_out(outcome)
