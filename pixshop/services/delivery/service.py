"""
ContentDeliveryService: sends a paid purchase's content to the buyer.

Content goes out in batches of delivery_batch_size (Telegram media-group limit 10).
After each batch one SentMessage entry {chat_id, message_ids} is committed, so a
failure mid-way leaves an exact retraction list. A retried delivery resumes after
the batches already recorded; it never re-sends them, nor the "access released"
header once delivery_started_at is set.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from pixshop.core.config import settings
from pixshop.models.creator import Creator
from pixshop.models.product import Product
from pixshop.services.delivery import texts
from pixshop.services.delivery.batches import partition, pending_batches
from pixshop.services.delivery.keyboard import build_see_more_markup
from pixshop.services.purchases.service import PurchaseService, as_utc
from pixshop.services.purchases.states import PurchaseStatus
from pixshop.services.telegram.client import TelegramClient
from pixshop.storage.base import Storage
from pixshop.utils.metrics import content_batches_sent_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReport:
    purchase_id: str
    completed: bool
    batches_sent: int = 0
    batches_total: int = 0
    skipped: str | None = None  # not_paid / already_completed


class ContentDeliveryService:
    def __init__(
        self,
        db: Session,
        telegram: TelegramClient,
        storage: Storage,
        batch_size: int | None = None,
        purchases: PurchaseService | None = None,
    ):
        self.db = db
        self.telegram = telegram
        self.storage = storage
        self.batch_size = batch_size or settings.delivery_batch_size
        self.purchases = purchases or PurchaseService(db)

    def _send_batch(self, chat_id: int, refs: list[str]) -> list[int]:
        if len(refs) == 1:
            return [self.telegram.send_photo(chat_id, refs[0])]
        return self.telegram.send_media_group(chat_id, refs)

    def deliver(self, purchase_id: str) -> DeliveryReport:
        """
        Deliver (or resume delivering) a paid purchase and move it to completed.
        Telegram errors propagate with the already-sent batches recorded.
        """
        purchase = self.purchases.get_or_raise(purchase_id)
        if purchase.status == PurchaseStatus.COMPLETED:
            return DeliveryReport(purchase_id, completed=True, skipped="already_completed")
        if purchase.status != PurchaseStatus.PAID:
            logger.warning(
                "delivery_skipped_not_paid",
                extra={"purchase_id": purchase_id, "status": purchase.status},
            )
            return DeliveryReport(purchase_id, completed=False, skipped="not_paid")

        product = self.db.query(Product).filter(Product.id == purchase.product_id).one_or_none()
        creator = self.db.query(Creator).filter(Creator.id == purchase.creator_id).one_or_none()
        items = list((product.content_items if product is not None else None) or [])
        refs = [self.storage.public_url(item) for item in items]
        chat_id = purchase.telegram_user_id
        already_sent = len(purchase.sent_messages or [])
        total = len(partition(refs, self.batch_size))

        if already_sent == 0 and purchase.delivery_started_at is None:
            self.telegram.send_message(
                chat_id,
                texts.access_released(purchase.product_snapshot.get("name", ""), creator.name if creator else None),
                parse_mode="HTML",
            )
            self.purchases.mark_delivery_started(purchase_id)

        sent = 0
        for index, batch in pending_batches(refs, self.batch_size, already_sent):
            message_ids = self._send_batch(chat_id, batch)
            self.purchases.record_sent_batch(purchase_id, chat_id, message_ids)
            content_batches_sent_total.inc()
            sent += 1
            logger.info(
                "delivery_batch_sent",
                extra={"purchase_id": purchase_id, "batch": index + 1, "batches": total, "count": len(batch)},
            )

        if refs:
            self.telegram.send_message(
                chat_id, texts.photos_sent(len(refs)), reply_markup=build_see_more_markup(), parse_mode="HTML"
            )
        else:
            self.telegram.send_message(chat_id, texts.no_content(), reply_markup=build_see_more_markup())

        completed = self.purchases.complete_delivery(purchase_id)
        if completed:
            purchase = self.purchases.get_or_raise(purchase_id)
            expires_at = as_utc(purchase.access_expires_at)
            if expires_at is not None:
                self.telegram.send_message(
                    chat_id,
                    texts.subscription_until(expires_at.strftime("%d/%m/%Y")),
                    parse_mode="HTML",
                )
        logger.info(
            "delivery_finished",
            extra={"purchase_id": purchase_id, "batches": total, "count": len(refs), "status": purchase.status},
        )
        return DeliveryReport(purchase_id, completed=completed, batches_sent=sent, batches_total=total)
