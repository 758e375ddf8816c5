"""
BuyerService: TelegramBuyer profile: identity upsert and running totals.
Totals change only through atomic column arithmetic (no read-modify-write).
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import update as sa_update
from sqlalchemy.orm import Session

from pixshop.models.buyer import TelegramBuyer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuyerIdentity:
    telegram_id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    language_code: str | None = None


class BuyerService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, telegram_id: int) -> TelegramBuyer | None:
        return (
            self.db.query(TelegramBuyer)
            .filter(TelegramBuyer.telegram_id == telegram_id)
            .one_or_none()
        )

    def upsert(self, identity: BuyerIdentity) -> TelegramBuyer:
        """Create the profile or refresh its identity fields. Flushes, does not commit."""
        buyer = self.get(identity.telegram_id)
        if buyer is None:
            buyer = TelegramBuyer(
                telegram_id=identity.telegram_id,
                username=identity.username,
                first_name=identity.first_name,
                last_name=identity.last_name,
                language_code=identity.language_code,
                total_purchases=0,
                total_spent=Decimal("0"),
            )
            self.db.add(buyer)
            self.db.flush()
            logger.info("buyer_created", extra={"user_id": identity.telegram_id})
            return buyer

        buyer.username = identity.username
        buyer.first_name = identity.first_name or buyer.first_name
        buyer.last_name = identity.last_name
        buyer.language_code = identity.language_code or buyer.language_code
        self.db.flush()
        return buyer

    def add_totals(self, telegram_id: int, purchases: int, spent: Decimal) -> bool:
        """Apply a delta to total_purchases / total_spent. False when there is no profile."""
        res = self.db.execute(
            sa_update(TelegramBuyer)
            .where(TelegramBuyer.telegram_id == telegram_id)
            .values(
                total_purchases=TelegramBuyer.total_purchases + purchases,
                total_spent=TelegramBuyer.total_spent + spent,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            logger.warning("buyer_totals_profile_missing", extra={"user_id": telegram_id})
            return False
        return True
