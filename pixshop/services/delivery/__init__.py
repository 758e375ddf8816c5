"""
Content delivery: batch planning (batches), texts/keyboard, and the sending service.
"""
from pixshop.services.delivery.batches import partition, pending_batches
from pixshop.services.delivery.service import ContentDeliveryService, DeliveryReport

__all__ = [
    "ContentDeliveryService",
    "DeliveryReport",
    "partition",
    "pending_batches",
]
