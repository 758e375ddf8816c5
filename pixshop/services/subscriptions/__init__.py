from pixshop.services.subscriptions.service import (
    WARNING_1_DAY,
    WARNING_7_DAYS,
    ExpiryWarning,
    NotifyReport,
    SubscriptionService,
    SweepReport,
)

__all__ = [
    "SubscriptionService",
    "ExpiryWarning",
    "WARNING_7_DAYS",
    "WARNING_1_DAY",
    "NotifyReport",
    "SweepReport",
]
