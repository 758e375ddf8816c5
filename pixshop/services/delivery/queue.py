"""
Enqueue content delivery for a purchase that is paid but not completed.
Repeat enqueues are safe: the task holds a per-purchase lock and resumes recorded batches.
"""
import logging

from pixshop.core.celery_app import celery_app

logger = logging.getLogger(__name__)

DELIVER_TASK = "pixshop.workers.tasks.deliver_purchase.deliver_purchase"


def enqueue_delivery(purchase_id: str) -> None:
    celery_app.send_task(DELIVER_TASK, args=[purchase_id])
    logger.info("delivery_enqueued", extra={"purchase_id": purchase_id})
