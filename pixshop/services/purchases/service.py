"""
PurchaseService: ledger of Purchase / Transaction rows and their status edges.

Every status change is a conditional UPDATE keyed on the current status
(see states.py); rowcount tells the caller whether it owns the transition.
Polling ("Já transferi") and the provider webhook both end in
apply_payment_status(), so re-applying "paid" is a no-op.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, update as sa_update
from sqlalchemy.orm import Session

from pixshop.core.config import settings
from pixshop.models.product import Product, SUBSCRIPTION_TYPE
from pixshop.models.purchase import Purchase
from pixshop.models.transaction import Transaction
from pixshop.services.buyers.service import BuyerIdentity, BuyerService
from pixshop.services.pix.errors import PixPaymentNotFound
from pixshop.services.purchases.errors import (
    InvalidTransition,
    PaymentNotIssued,
    PaymentNotSimulated,
    ProductUnavailable,
    PurchaseNotFound,
)
from pixshop.services.purchases.states import (
    PurchaseStatus,
    TransactionStatus,
    purchase_predecessors,
    transaction_predecessors,
)
from pixshop.utils.metrics import purchase_transitions_total

logger = logging.getLogger(__name__)

PAID_STATUSES = (PurchaseStatus.PAID, PurchaseStatus.COMPLETED)
NOTE_PAYMENT_EXPIRED = "payment_expired"
NOTE_PAYMENT_FAILED = "payment_failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PaymentOutcome:
    purchase_id: str
    purchase_status: str
    transaction_status: str | None
    newly_paid: bool = False  # this call moved the purchase to paid: the caller enqueues delivery
    changed: bool = False

    @property
    def is_paid(self) -> bool:
        return self.purchase_status in PAID_STATUSES

    @property
    def needs_delivery(self) -> bool:
        """Paid but not completed: enqueue (again). A lost enqueue is retried by the next report."""
        return self.newly_paid or self.purchase_status == PurchaseStatus.PAID


class PurchaseService:
    def __init__(self, db: Session, buyers: BuyerService | None = None):
        self.db = db
        self.buyers = buyers or BuyerService(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, purchase_id: str) -> Purchase | None:
        return self.db.query(Purchase).filter(Purchase.id == purchase_id).one_or_none()

    def get_or_raise(self, purchase_id: str) -> Purchase:
        purchase = self.get(purchase_id)
        if purchase is None:
            raise PurchaseNotFound(f"Purchase {purchase_id} not found", purchase_id=purchase_id)
        return purchase

    def get_transaction(self, purchase: Purchase) -> Transaction | None:
        return (
            self.db.query(Transaction)
            .filter(Transaction.purchase_id == purchase.id)
            .one_or_none()
        )

    def find_transaction(self, payment_id: str) -> Transaction | None:
        """By provider payment id, falling back to our own transaction id (externalId)."""
        tx = (
            self.db.query(Transaction)
            .filter(Transaction.external_id == payment_id)
            .one_or_none()
        )
        if tx is None:
            tx = self.db.query(Transaction).filter(Transaction.id == payment_id).one_or_none()
        return tx

    # ------------------------------------------------------------------
    # Conditional updates
    # ------------------------------------------------------------------

    def _update_purchase(
        self,
        purchase_id: str,
        target: str,
        only_from: tuple[str, ...] | None = None,
        **values,
    ) -> bool:
        allowed = purchase_predecessors(target)
        if only_from is not None:
            allowed = tuple(s for s in allowed if s in only_from)
        res = self.db.execute(
            sa_update(Purchase)
            .where(Purchase.id == purchase_id, Purchase.status.in_(allowed))
            .values(status=target, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        applied = res.rowcount == 1
        if applied:
            purchase_transitions_total.labels(to=target).inc()
        return applied

    def _update_transaction(self, transaction_id: str, target: str, **values) -> bool:
        res = self.db.execute(
            sa_update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status.in_(transaction_predecessors(target)),
            )
            .values(status=target, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def _commit_and_refresh(self, *rows) -> None:
        self.db.commit()
        for row in rows:
            if row is not None:
                self.db.refresh(row)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_purchase(self, product_id: str, buyer: BuyerIdentity) -> Purchase:
        """Pending purchase with a frozen product snapshot; upserts the buyer profile."""
        product = self.db.query(Product).filter(Product.id == product_id).one_or_none()
        if product is None or not product.is_active:
            raise ProductUnavailable(f"Product {product_id} is not available", product_id=product_id)
        price = Decimal(str(product.price))
        if price <= 0:
            raise ProductUnavailable(f"Product {product_id} has no price", product_id=product_id)

        snapshot = {
            "name": product.name,
            "type": product.type,
            "price": str(price),
            "currency": product.currency,
            "duration_days": product.duration_days,
        }
        self.buyers.upsert(buyer)
        purchase = Purchase(
            telegram_user_id=buyer.telegram_id,
            telegram_username=buyer.username,
            telegram_first_name=buyer.first_name,
            creator_id=product.creator_id,
            product_id=product.id,
            product_snapshot=snapshot,
            product_type=product.type,
            amount=price,
            currency=product.currency,
            status=PurchaseStatus.PENDING,
            sent_messages=[],
        )
        self.db.add(purchase)
        self.db.commit()
        self.db.refresh(purchase)
        logger.info(
            "purchase_created",
            extra={"purchase_id": purchase.id, "user_id": buyer.telegram_id, "status": purchase.status},
        )
        return purchase

    def issue_payment(self, purchase_id: str, gateway, customer=None) -> Transaction:
        """
        Create (or reuse) the purchase's Transaction and request a PIX code for it.

        A transaction already in processing is returned as is; the gateway is only
        called for a transaction still pending (first issue or a crashed attempt).
        """
        purchase = self.get_or_raise(purchase_id)
        if purchase.status != PurchaseStatus.PENDING:
            raise InvalidTransition(
                f"Purchase {purchase_id} is {purchase.status}, payment can only be issued while pending",
                purchase_id=purchase_id,
            )

        tx = self.get_transaction(purchase)
        if tx is not None and tx.status == TransactionStatus.PROCESSING and tx.external_id:
            return tx
        if tx is not None and tx.status != TransactionStatus.PENDING:
            raise InvalidTransition(
                f"Transaction {tx.id} is already {tx.status}", purchase_id=purchase_id
            )
        if tx is None:
            tx = Transaction(
                purchase_id=purchase.id,
                payment_method="pix",
                amount=purchase.amount,
                currency=purchase.currency,
                status=TransactionStatus.PENDING,
            )
            self.db.add(tx)
            self.db.flush()
            purchase.transaction_id = tx.id
            self.db.commit()

        payment = gateway.create_payment(
            amount=Decimal(str(purchase.amount)),
            currency=purchase.currency,
            description=purchase.product_snapshot.get("name") or "PixShop",
            external_id=tx.id,
            customer=customer,
        )
        applied = self._update_transaction(
            tx.id,
            TransactionStatus.PROCESSING,
            external_id=payment.id,
            payment_mode=payment.mode,
            pix_code=payment.payment_code,
            pix_qr_image=payment.qr_image,
            pix_expires_at=payment.expires_at,
            external_response=payment.raw,
        )
        self._commit_and_refresh(tx)
        if not applied:
            raise InvalidTransition(f"Transaction {tx.id} moved to {tx.status} concurrently", purchase_id=purchase_id)
        logger.info(
            "payment_issued",
            extra={
                "purchase_id": purchase.id,
                "transaction_id": tx.id,
                "payment_id": payment.id,
                "mode": payment.mode,
            },
        )
        return tx

    # ------------------------------------------------------------------
    # Payment status (shared by polling and webhook)
    # ------------------------------------------------------------------

    def _outcome(self, purchase: Purchase, tx: Transaction | None, *, newly_paid=False, changed=False) -> PaymentOutcome:
        return PaymentOutcome(
            purchase_id=purchase.id,
            purchase_status=purchase.status,
            transaction_status=tx.status if tx is not None else None,
            newly_paid=newly_paid,
            changed=changed,
        )

    def apply_payment_status(
        self,
        transaction_id: str,
        status: str,
        paid_at: datetime | None = None,
        failure_reason: str | None = None,
    ) -> PaymentOutcome:
        """
        Apply a provider-reported status to the transaction and its purchase.

        pending / processing past pix_expires_at is treated as expired.
        """
        tx = self.db.query(Transaction).filter(Transaction.id == transaction_id).one()
        purchase = self.get_or_raise(tx.purchase_id)

        if status == TransactionStatus.PAID:
            return self._apply_paid(tx, purchase, paid_at)
        if status == TransactionStatus.FAILED:
            return self._apply_failed(tx, purchase, failure_reason or NOTE_PAYMENT_FAILED)
        if status == TransactionStatus.EXPIRED:
            return self._apply_expired(tx, purchase)

        expires_at = as_utc(tx.pix_expires_at)
        if expires_at is not None and expires_at <= utcnow():
            return self._apply_expired(tx, purchase)
        return self._outcome(purchase, tx)

    def _apply_paid(self, tx: Transaction, purchase: Purchase, paid_at: datetime | None) -> PaymentOutcome:
        tx_applied = self._update_transaction(tx.id, TransactionStatus.PAID, paid_at=paid_at or utcnow())
        newly_paid = self._update_purchase(
            purchase.id, PurchaseStatus.PAID, only_from=(PurchaseStatus.PENDING,)
        )
        if newly_paid:
            self.buyers.add_totals(purchase.telegram_user_id, 1, Decimal(str(purchase.amount)))
        self._commit_and_refresh(tx, purchase)

        if newly_paid:
            logger.info(
                "purchase_paid",
                extra={"purchase_id": purchase.id, "transaction_id": tx.id, "user_id": purchase.telegram_user_id},
            )
        elif purchase.status not in PAID_STATUSES:
            logger.warning(
                "payment_paid_after_terminal",
                extra={"purchase_id": purchase.id, "transaction_id": tx.id, "status": purchase.status},
            )
        else:
            logger.info("payment_paid_duplicate", extra={"purchase_id": purchase.id, "transaction_id": tx.id})
        return self._outcome(purchase, tx, newly_paid=newly_paid, changed=tx_applied or newly_paid)

    def _apply_failed(self, tx: Transaction, purchase: Purchase, reason: str) -> PaymentOutcome:
        tx_applied = self._update_transaction(
            tx.id, TransactionStatus.FAILED, failed_at=utcnow(), failure_reason=reason
        )
        purchase_applied = False
        if tx_applied:
            purchase_applied = self._update_purchase(
                purchase.id, PurchaseStatus.FAILED, only_from=(PurchaseStatus.PENDING,), notes=reason
            )
        self._commit_and_refresh(tx, purchase)
        if tx_applied:
            logger.info(
                "payment_failed",
                extra={"purchase_id": purchase.id, "transaction_id": tx.id, "reason": reason},
            )
        return self._outcome(purchase, tx, changed=tx_applied or purchase_applied)

    def _apply_expired(self, tx: Transaction, purchase: Purchase) -> PaymentOutcome:
        tx_applied = self._update_transaction(tx.id, TransactionStatus.EXPIRED)
        purchase_applied = False
        if tx_applied:
            purchase_applied = self._update_purchase(
                purchase.id,
                PurchaseStatus.FAILED,
                only_from=(PurchaseStatus.PENDING,),
                notes=NOTE_PAYMENT_EXPIRED,
            )
        self._commit_and_refresh(tx, purchase)
        if tx_applied:
            logger.info("payment_expired", extra={"purchase_id": purchase.id, "transaction_id": tx.id})
        return self._outcome(purchase, tx, changed=tx_applied or purchase_applied)

    def _issued_transaction(self, purchase: Purchase) -> Transaction:
        tx = self.get_transaction(purchase)
        if tx is None or not tx.external_id:
            raise PaymentNotIssued(f"Purchase {purchase.id} has no issued payment", purchase_id=purchase.id)
        return tx

    @staticmethod
    def _is_simulated(tx: Transaction, gateway) -> bool:
        return tx.payment_mode == "simulated" or gateway.is_simulated(tx.external_id)

    def _restore_simulated(self, tx: Transaction, gateway) -> None:
        if tx.payment_mode != "simulated":
            return
        gateway.restore_simulated(
            tx.external_id,
            external_id=tx.id,
            amount=Decimal(str(tx.amount)),
            currency=tx.currency,
            payment_code=tx.pix_code,
            expires_at=as_utc(tx.pix_expires_at),
        )

    def confirm_simulated(self, purchase_id: str, gateway) -> PaymentOutcome:
        """Operator action: mark a simulated payment paid, then apply it like a poll."""
        purchase = self.get_or_raise(purchase_id)
        tx = self._issued_transaction(purchase)
        if not self._is_simulated(tx, gateway):
            raise PaymentNotSimulated(
                f"Payment {tx.external_id} is live, only simulated payments can be confirmed",
                purchase_id=purchase_id,
            )
        self._restore_simulated(tx, gateway)
        # False when auto-pay or expiry already settled it; the refresh reports which
        gateway.confirm_manually(tx.external_id)
        return self.refresh_payment_status(purchase_id, gateway)

    def refresh_payment_status(self, purchase_id: str, gateway) -> PaymentOutcome:
        """
        Poll the gateway for the purchase's payment and apply the result.

        A simulated payment issued by another process is restored from the stored
        transaction first. A payment the gateway does not know is expired once its
        code TTL has passed; before that PixPaymentNotFound propagates. Other
        PixProviderError propagate with the records left as they were for the next poll.
        """
        purchase = self.get_or_raise(purchase_id)
        tx = self._issued_transaction(purchase)
        if tx.status in TransactionStatus.TERMINAL:
            return self._outcome(purchase, tx)

        expires_at = as_utc(tx.pix_expires_at)
        self._restore_simulated(tx, gateway)
        try:
            status = gateway.check_status(tx.external_id)
        except PixPaymentNotFound:
            if expires_at is None or expires_at > utcnow():
                raise
            logger.warning(
                "payment_unknown_past_expiry",
                extra={"purchase_id": purchase.id, "transaction_id": tx.id, "payment_id": tx.external_id},
            )
            return self._apply_expired(tx, purchase)
        return self.apply_payment_status(tx.id, status.status, paid_at=status.paid_at)

    # ------------------------------------------------------------------
    # Delivery bookkeeping
    # ------------------------------------------------------------------

    def record_sent_batch(self, purchase_id: str, chat_id: int, message_ids: list[int]) -> Purchase:
        """
        Append one SentMessage entry and commit it before the next batch goes out.

        Conditional on status paid and on the batches_sent value read here: when a
        refund or another writer got in between, nothing is written and
        InvalidTransition is raised, so an entry is never overwritten.
        """
        purchase = self.get_or_raise(purchase_id)
        if purchase.status != PurchaseStatus.PAID:
            raise InvalidTransition(
                f"Purchase {purchase_id} is {purchase.status}, batches are recorded only while paid",
                purchase_id=purchase_id,
            )
        entry = {"chat_id": int(chat_id), "message_ids": [int(m) for m in message_ids]}
        seen = purchase.batches_sent or 0
        res = self.db.execute(
            sa_update(Purchase)
            .where(
                Purchase.id == purchase_id,
                Purchase.status == PurchaseStatus.PAID,
                Purchase.batches_sent == seen,
            )
            .values(
                sent_messages=[*(purchase.sent_messages or []), entry],
                batches_sent=seen + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            self.db.rollback()
            logger.error(
                "delivery_batch_not_recorded",
                extra={"purchase_id": purchase_id, "chat_id": chat_id, "message_ids": entry["message_ids"]},
            )
            raise InvalidTransition(
                f"Purchase {purchase_id} changed while batch {seen + 1} was sent", purchase_id=purchase_id
            )
        self._commit_and_refresh(purchase)
        return purchase

    def mark_delivery_started(self, purchase_id: str) -> bool:
        """Set delivery_started_at once, after the header message went out."""
        res = self.db.execute(
            sa_update(Purchase)
            .where(
                Purchase.id == purchase_id,
                Purchase.status == PurchaseStatus.PAID,
                Purchase.delivery_started_at.is_(None),
            )
            .values(delivery_started_at=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return res.rowcount == 1

    def stalled_deliveries(self, older_than: timedelta) -> list[str]:
        """Ids of purchases still paid with no progress for older_than."""
        cutoff = utcnow() - older_than
        rows = (
            self.db.query(Purchase.id)
            .filter(Purchase.status == PurchaseStatus.PAID, Purchase.updated_at < cutoff)
            .order_by(Purchase.updated_at)
            .all()
        )
        return [row.id for row in rows]

    def complete_delivery(self, purchase_id: str) -> bool:
        """paid -> completed; sets delivered_at and, for subscriptions, access_expires_at."""
        purchase = self.get_or_raise(purchase_id)
        now = utcnow()
        values = {"delivered_at": now}
        if purchase.product_type == SUBSCRIPTION_TYPE:
            days = (purchase.product_snapshot or {}).get("duration_days") or settings.subscription_default_days
            values["access_expires_at"] = now + timedelta(days=int(days))
        applied = self._update_purchase(purchase.id, PurchaseStatus.COMPLETED, **values)
        self._commit_and_refresh(purchase)
        if applied:
            logger.info(
                "purchase_completed",
                extra={"purchase_id": purchase.id, "user_id": purchase.telegram_user_id},
            )
        return applied

    def complete(self, purchase_id: str) -> Purchase:
        """Operator action: same edge as delivery completion, error when not applicable."""
        if not self.complete_delivery(purchase_id):
            purchase = self.get_or_raise(purchase_id)
            raise InvalidTransition(
                f"Purchase {purchase_id} is {purchase.status}, only paid purchases can be completed",
                purchase_id=purchase_id,
            )
        return self.get_or_raise(purchase_id)

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def mark_notified(self, purchase_id: str, flag: str) -> bool:
        """Set expiration_notified_7_days / expiration_notified_1_day once."""
        if flag not in ("expiration_notified_7_days", "expiration_notified_1_day"):
            raise ValueError(f"Unknown notification flag: {flag}")
        column = getattr(Purchase, flag)
        res = self.db.execute(
            sa_update(Purchase)
            .where(
                Purchase.id == purchase_id,
                Purchase.status == PurchaseStatus.COMPLETED,
                column.is_(False),
            )
            .values({flag: True, "updated_at": utcnow()})
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return res.rowcount == 1

    def expire_subscription(self, purchase_id: str) -> bool:
        """completed -> expired and clear sent_messages (after the messages were deleted)."""
        applied = self._update_purchase(purchase_id, PurchaseStatus.EXPIRED, sent_messages=[])
        self.db.commit()
        return applied

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def refund(self, purchase_id: str, reason: str | None = None) -> Purchase:
        """Operator refund bookkeeping: purchase and transaction -> refunded, buyer totals reverted."""
        purchase = self.get_or_raise(purchase_id)
        applied = self._update_purchase(
            purchase.id, PurchaseStatus.REFUNDED, notes=reason or "Refunded by operator"
        )
        if not applied:
            self.db.rollback()
            raise InvalidTransition(
                f"Purchase {purchase_id} is {purchase.status}, only paid or completed purchases can be refunded",
                purchase_id=purchase_id,
            )
        if purchase.transaction_id:
            self._update_transaction(
                purchase.transaction_id,
                TransactionStatus.REFUNDED,
                refunded_at=utcnow(),
                refund_reason=reason,
            )
        self.buyers.add_totals(purchase.telegram_user_id, -1, -Decimal(str(purchase.amount)))
        self._commit_and_refresh(purchase)
        logger.info("purchase_refunded", extra={"purchase_id": purchase.id, "reason": reason})
        return purchase

    # ------------------------------------------------------------------
    # Listings / stats
    # ------------------------------------------------------------------

    def list_purchases(
        self,
        status: str | None = None,
        creator_id: str | None = None,
        telegram_user_id: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Purchase], int]:
        query = self.db.query(Purchase)
        if status:
            query = query.filter(Purchase.status == status)
        if creator_id:
            query = query.filter(Purchase.creator_id == creator_id)
        if telegram_user_id is not None:
            query = query.filter(Purchase.telegram_user_id == telegram_user_id)
        total = query.count()
        items = (
            query.order_by(Purchase.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def user_history(self, telegram_user_id: int, page: int = 1, limit: int = 10) -> tuple[list[Purchase], int]:
        """Buyer's paid / completed purchases, newest first."""
        query = self.db.query(Purchase).filter(
            Purchase.telegram_user_id == telegram_user_id,
            Purchase.status.in_(PAID_STATUSES),
        )
        total = query.count()
        items = (
            query.order_by(Purchase.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def stats(self) -> dict:
        def _totals(*filters) -> tuple[int, Decimal]:
            count, revenue = (
                self.db.query(func.count(Purchase.id), func.coalesce(func.sum(Purchase.amount), 0))
                .filter(Purchase.status.in_(PAID_STATUSES), *filters)
                .one()
            )
            return int(count or 0), Decimal(str(revenue or 0)).quantize(Decimal("0.01"))

        total, revenue = _totals()
        last_count, last_revenue = _totals(Purchase.created_at >= utcnow() - timedelta(hours=24))
        by_status = {
            status: count
            for status, count in self.db.query(Purchase.status, func.count(Purchase.id))
            .group_by(Purchase.status)
            .all()
        }
        return {
            "total": total,
            "revenue": revenue,
            "by_status": by_status,
            "last_24h": {"count": last_count, "revenue": last_revenue},
        }
