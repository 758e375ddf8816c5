"""
CatalogService: read model of creators and their products for the bot.
"""
from sqlalchemy.orm import Session

from pixshop.models.creator import Creator, TIER_ORDER
from pixshop.models.product import Product, SUBSCRIPTION_TYPE

MAX_LISTED_CREATORS = 10


class CatalogService:
    def __init__(self, db: Session):
        self.db = db

    def list_creators(self, limit: int = MAX_LISTED_CREATORS) -> list[Creator]:
        """Active creators with at least one active product, best tier first."""
        with_products = (
            self.db.query(Product.creator_id)
            .filter(Product.is_active.is_(True))
            .distinct()
        )
        creators = (
            self.db.query(Creator)
            .filter(Creator.is_active.is_(True), Creator.id.in_(with_products))
            .order_by(Creator.created_at)
            .all()
        )
        creators.sort(key=lambda c: TIER_ORDER.get(c.tier, 0), reverse=True)
        return creators[:limit]

    def get_creator(self, creator_id: str) -> Creator | None:
        return (
            self.db.query(Creator)
            .filter(Creator.id == creator_id, Creator.is_active.is_(True))
            .one_or_none()
        )

    def get_product(self, product_id: str) -> Product | None:
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.is_active.is_(True))
            .one_or_none()
        )

    def list_packs(self, creator_id: str) -> list[Product]:
        """One-time products (everything except subscriptions), cheapest first."""
        return (
            self.db.query(Product)
            .filter(
                Product.creator_id == creator_id,
                Product.is_active.is_(True),
                Product.type != SUBSCRIPTION_TYPE,
            )
            .order_by(Product.price)
            .all()
        )

    def get_subscription(self, creator_id: str) -> Product | None:
        return (
            self.db.query(Product)
            .filter(
                Product.creator_id == creator_id,
                Product.is_active.is_(True),
                Product.type == SUBSCRIPTION_TYPE,
            )
            .order_by(Product.price)
            .first()
        )
