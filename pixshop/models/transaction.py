"""
Transaction: provider-facing payment attempt, 1:1 with a Purchase.
external_id is the provider payment id and is unique once set.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text

from pixshop.db.base import Base, JSONType


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    purchase_id = Column(String, ForeignKey("purchases.id"), unique=True, nullable=False, index=True)
    payment_method = Column(String, nullable=False, default="pix")  # pix / credit_card / bank_transfer
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    status = Column(String, nullable=False, default="pending", index=True)

    # Provider
    external_id = Column(String, unique=True, nullable=True)
    payment_mode = Column(String, nullable=True)  # live / simulated
    pix_code = Column(Text, nullable=True)  # copy-and-paste EMV payload
    pix_qr_image = Column(Text, nullable=True)  # URL or data:image/png;base64,...
    pix_expires_at = Column(DateTime(timezone=True), nullable=True)
    external_response = Column(JSONType, nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_reason = Column(String, nullable=True)

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
