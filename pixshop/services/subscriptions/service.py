"""
SubscriptionService: expiry warnings and the expiration sweep.

Selection: completed subscription purchases by access_expires_at.
Warnings set their flag once (conditional UPDATE), so a flagged purchase is never
re-notified. The sweep deletes every recorded message (failures tolerated), then
moves the purchase to expired and clears sent_messages; an expired purchase no
longer matches the selection, so a second sweep is a no-op.

Outbound calls are serialized with a fixed delay to stay under Telegram limits.
"""
import html
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from pixshop.core.config import settings
from pixshop.models.creator import Creator
from pixshop.models.product import SUBSCRIPTION_TYPE
from pixshop.models.purchase import Purchase
from pixshop.services.purchases.service import PurchaseService, utcnow
from pixshop.services.purchases.states import PurchaseStatus
from pixshop.services.telegram.client import TelegramAPIError, TelegramClient
from pixshop.utils.metrics import (
    subscription_messages_deleted_total,
    subscription_notifications_total,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryWarning:
    kind: str  # metric label
    window: timedelta
    flag: str


WARNING_7_DAYS = ExpiryWarning("7_days", timedelta(days=7), "expiration_notified_7_days")
WARNING_1_DAY = ExpiryWarning("1_day", timedelta(days=1), "expiration_notified_1_day")


def warning_text(warning: ExpiryWarning, creator_name: str | None) -> str:
    name = html.escape(creator_name or "a modelo")
    if warning is WARNING_1_DAY:
        return (
            f"<b>Sua assinatura com {name} expira amanha!</b>\n\n"
            "Nao perca seu acesso ao conteudo exclusivo.\n\n"
            "Use /start para renovar agora"
        )
    return (
        f"<b>Sua assinatura com {name} expira em 7 dias!</b>\n\n"
        "Para continuar tendo acesso ao conteudo exclusivo, renove sua assinatura.\n\n"
        "Use /start para renovar"
    )


@dataclass
class NotifyReport:
    kind: str
    selected: int = 0
    notified: int = 0
    failed: int = 0


@dataclass
class SweepReport:
    selected: int = 0
    expired: int = 0
    deleted: int = 0
    failed: int = 0


class SubscriptionService:
    def __init__(
        self,
        db: Session,
        telegram: TelegramClient,
        purchases: PurchaseService | None = None,
        *,
        notify_delay: float | None = None,
        delete_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.telegram = telegram
        self.purchases = purchases or PurchaseService(db)
        self.notify_delay = settings.notify_delay_seconds if notify_delay is None else notify_delay
        self.delete_delay = settings.delete_delay_seconds if delete_delay is None else delete_delay
        self._sleep = sleep
        self._clock = clock

    def _active_subscriptions(self):
        return self.db.query(Purchase).filter(
            Purchase.status == PurchaseStatus.COMPLETED,
            Purchase.product_type == SUBSCRIPTION_TYPE,
            Purchase.access_expires_at.isnot(None),
        )

    def expiring(self, warning: ExpiryWarning) -> list[Purchase]:
        """Completed subscriptions ending within the window, not yet warned."""
        now = self._clock()
        return (
            self._active_subscriptions()
            .filter(
                Purchase.access_expires_at > now,
                Purchase.access_expires_at <= now + warning.window,
                getattr(Purchase, warning.flag).is_(False),
            )
            .all()
        )

    def expired(self) -> list[Purchase]:
        now = self._clock()
        return self._active_subscriptions().filter(Purchase.access_expires_at <= now).all()

    def _creator_names(self, purchases: list[Purchase]) -> dict[str, str]:
        ids = {p.creator_id for p in purchases}
        if not ids:
            return {}
        return {c.id: c.name for c in self.db.query(Creator).filter(Creator.id.in_(ids)).all()}

    def notify_expiring(self, warning: ExpiryWarning) -> NotifyReport:
        purchases = self.expiring(warning)
        names = self._creator_names(purchases)
        report = NotifyReport(kind=warning.kind, selected=len(purchases))
        logger.info("subscription_expiring_found", extra={"count": len(purchases), "reason": warning.kind})

        for purchase in purchases:
            purchase_id, user_id = purchase.id, purchase.telegram_user_id
            try:
                self.telegram.send_message(
                    user_id, warning_text(warning, names.get(purchase.creator_id)), parse_mode="HTML"
                )
            except (TelegramAPIError, httpx.HTTPError) as e:
                report.failed += 1
                logger.warning(
                    "subscription_notification_failed",
                    extra={"purchase_id": purchase_id, "user_id": user_id, "reason": warning.kind, "error": str(e)},
                )
                continue
            if self.purchases.mark_notified(purchase_id, warning.flag):
                report.notified += 1
                subscription_notifications_total.labels(kind=warning.kind).inc()
                logger.info(
                    "subscription_notification_sent",
                    extra={"purchase_id": purchase_id, "user_id": user_id, "reason": warning.kind},
                )
            self._sleep(self.notify_delay)
        return report

    def _delete_messages(self, purchase: Purchase, report: SweepReport) -> None:
        for entry in purchase.sent_messages or []:
            chat_id = entry.get("chat_id")
            for message_id in entry.get("message_ids") or []:
                try:
                    self.telegram.delete_message(chat_id, message_id)
                    report.deleted += 1
                    subscription_messages_deleted_total.labels(result="deleted").inc()
                except (TelegramAPIError, httpx.HTTPError) as e:
                    # Already deleted by the user, or the chat is gone
                    report.failed += 1
                    subscription_messages_deleted_total.labels(result="failed").inc()
                    logger.debug(
                        "subscription_message_delete_failed",
                        extra={"purchase_id": purchase.id, "chat_id": chat_id, "message_id": message_id, "error": str(e)},
                    )
                self._sleep(self.delete_delay)

    def process_expired(self) -> SweepReport:
        purchases = self.expired()
        report = SweepReport(selected=len(purchases))
        logger.info("subscription_expired_found", extra={"count": len(purchases)})

        for purchase in purchases:
            before = report.deleted
            self._delete_messages(purchase, report)
            if self.purchases.expire_subscription(purchase.id):
                report.expired += 1
                logger.info(
                    "subscription_expired_processed",
                    extra={
                        "purchase_id": purchase.id,
                        "user_id": purchase.telegram_user_id,
                        "deleted": report.deleted - before,
                    },
                )
        return report
