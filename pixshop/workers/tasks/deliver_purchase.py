"""
Celery tasks: deliver a paid purchase's content, and re-enqueue deliveries stuck in paid.

Enqueued by every report that finds the purchase paid but not completed (bot poll,
webhook, operator confirm / redeliver) and by the stalled-delivery beat job. One
delivery per purchase runs at a time (Redis lock); a retry resumes after the
batches already recorded.
"""
import logging
from datetime import timedelta

from pixshop.core.celery_app import celery_app
from pixshop.core.config import settings
from pixshop.db.session import SessionLocal
from pixshop.services.delivery.queue import enqueue_delivery
from pixshop.services.delivery.service import ContentDeliveryService
from pixshop.services.idempotency import IdempotencyStore
from pixshop.services.purchases.service import PurchaseService
from pixshop.services.telegram.client import TelegramClient
from pixshop.storage.base import PublicUrlStorage
from pixshop.workers.tasks.retry import RETRY_POLICY, is_last_attempt

logger = logging.getLogger(__name__)

DELIVERY_TIME_LIMIT = 300
# outlives a hard-killed task, so a lost lock frees itself
DELIVERY_LOCK_TTL = DELIVERY_TIME_LIMIT + 30
STALLED_THRESHOLD_MINUTES = 10


def delivery_lock_key(purchase_id: str) -> str:
    return f"deliver:{purchase_id}"


@celery_app.task(
    bind=True,
    name="pixshop.workers.tasks.deliver_purchase.deliver_purchase",
    time_limit=DELIVERY_TIME_LIMIT,
    soft_time_limit=DELIVERY_TIME_LIMIT - 20,
    **RETRY_POLICY,
)
def deliver_purchase(self, purchase_id: str) -> dict:
    """Send content batches and complete the purchase."""
    lock = IdempotencyStore()
    lock_key = delivery_lock_key(purchase_id)
    if not lock.check_and_set(lock_key, ttl_seconds=DELIVERY_LOCK_TTL):
        logger.info("deliver_purchase_in_progress", extra={"purchase_id": purchase_id})
        return {"ok": False, "skipped": "in_progress", "batches_sent": 0, "batches_total": 0}

    db = SessionLocal()
    telegram = TelegramClient()
    try:
        service = ContentDeliveryService(db, telegram, PublicUrlStorage(settings.storage_public_url))
        report = service.deliver(purchase_id)
        return {
            "ok": report.completed,
            "skipped": report.skipped,
            "batches_sent": report.batches_sent,
            "batches_total": report.batches_total,
        }
    except Exception as e:
        db.rollback()
        log = logger.error if is_last_attempt(self) else logger.warning
        log(
            "deliver_purchase_failed",
            extra={"purchase_id": purchase_id, "attempt": self.request.retries + 1, "error": str(e)},
        )
        raise
    finally:
        telegram.close()
        db.close()
        lock.release(lock_key)


@celery_app.task(
    name="pixshop.workers.tasks.deliver_purchase.redeliver_stalled",
    time_limit=60,
    soft_time_limit=55,
)
def redeliver_stalled() -> dict:
    """Re-enqueue purchases paid but not completed with no progress for a while
    (enqueue lost at the paid edge, delivery retries exhausted)."""
    db = SessionLocal()
    try:
        stalled = PurchaseService(db).stalled_deliveries(timedelta(minutes=STALLED_THRESHOLD_MINUTES))
        enqueued = 0
        for purchase_id in stalled:
            try:
                enqueue_delivery(purchase_id)
                enqueued += 1
            except Exception as e:
                logger.warning("redeliver_stalled_enqueue_failed", extra={"purchase_id": purchase_id, "error": str(e)})
        if stalled:
            logger.warning("redeliver_stalled", extra={"count": len(stalled), "enqueued": enqueued})
        return {"ok": True, "stalled": len(stalled), "enqueued": enqueued}
    finally:
        db.close()
