"""
Product: item a creator sells: one-time pack (content/ppv/custom) or subscription.
content_items is what gets delivered after payment; preview_images is shown before.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from pixshop.db.base import Base, JSONType


PRODUCT_TYPES = ("subscription", "content", "ppv", "custom")
SUBSCRIPTION_TYPE = "subscription"
CURRENCIES = ("BRL", "USD")


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    creator_id = Column(String, ForeignKey("creators.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False)  # subscription / content / ppv / custom
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    preview_images = Column(JSONType, nullable=False, default=list)
    content_items = Column(JSONType, nullable=False, default=list)
    duration_days = Column(Integer, nullable=True)  # subscriptions only; None = settings default
    is_active = Column(Boolean, nullable=False, default=True)
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

    @property
    def is_subscription(self) -> bool:
        return self.type == SUBSCRIPTION_TYPE
