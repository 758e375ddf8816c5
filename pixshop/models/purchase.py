"""
Purchase: one attempt of one Telegram user to acquire one product.
Never deleted: refunded / expired rows stay as the audit trail.

product_snapshot freezes name/type/price/currency at purchase time.
sent_messages: [{"chat_id": int, "message_ids": [int, ...]}, ...], one entry per
delivered content batch; cleared once, by the expiration sweep. batches_sent counts
the entries and guards each append. delivery_started_at is set once the
"access released" header went out.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Index, Integer, Numeric, String, Text

from pixshop.db.base import Base, JSONType


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        Index("ix_purchases_buyer_created", "telegram_user_id", "created_at"),
        Index("ix_purchases_creator_status", "creator_id", "status"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))

    # Buyer
    telegram_user_id = Column(BigInteger, nullable=False, index=True)
    telegram_username = Column(String, nullable=True)
    telegram_first_name = Column(String, nullable=True)

    # What was bought
    creator_id = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=False)
    product_snapshot = Column(JSONType, nullable=False)  # {name, type, price, currency}
    product_type = Column(String, nullable=False, index=True)  # denormalized from snapshot for job filters

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    status = Column(String, nullable=False, default="pending", index=True)
    transaction_id = Column(String, nullable=True)

    # Delivery / access
    delivery_started_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    access_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    sent_messages = Column(JSONType, nullable=False, default=list)
    batches_sent = Column(Integer, nullable=False, default=0)
    expiration_notified_7_days = Column(Boolean, nullable=False, default=False)
    expiration_notified_1_day = Column(Boolean, nullable=False, default=False)

    notes = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
