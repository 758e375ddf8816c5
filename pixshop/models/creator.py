"""
Creator: a content model whose products are sold through the bot.
Catalog editing belongs to the dashboard; the bot only reads these rows.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, Text

from pixshop.db.base import Base, JSONType


TIER_ORDER = {"platinum": 3, "gold": 2, "silver": 1, "bronze": 0}


class Creator(Base):
    __tablename__ = "creators"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    username = Column(String, unique=True, nullable=False, index=True)
    bio = Column(Text, nullable=True)
    tier = Column(String, nullable=False, default="bronze")  # bronze / silver / gold / platinum
    profile_url = Column(String, nullable=True)
    referral_link = Column(String, nullable=True)
    preview_photos = Column(JSONType, nullable=False, default=list)  # storage keys or URLs
    is_active = Column(Boolean, nullable=False, default=True, index=True)
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
