"""
Celery beat jobs: 7-day and 1-day expiry warnings (daily) and the hourly expiration sweep.
Each run is idempotent; a run that exhausts its retries waits for the next tick.
"""
import logging
from dataclasses import asdict

from pixshop.core.celery_app import celery_app
from pixshop.db.session import SessionLocal
from pixshop.services.subscriptions.service import (
    WARNING_1_DAY,
    WARNING_7_DAYS,
    ExpiryWarning,
    SubscriptionService,
)
from pixshop.services.telegram.client import TelegramClient
from pixshop.workers.tasks.retry import RETRY_POLICY, is_last_attempt

logger = logging.getLogger(__name__)


def _run(task, job: str, fn) -> dict:
    db = SessionLocal()
    telegram = TelegramClient()
    try:
        report = fn(SubscriptionService(db, telegram))
        return {"ok": True, **asdict(report)}
    except Exception as e:
        db.rollback()
        if is_last_attempt(task):
            logger.error(
                "subscription_job_exhausted",
                extra={"task": job, "attempt": task.request.retries + 1, "error": str(e)},
            )
        else:
            logger.warning(
                "subscription_job_failed",
                extra={"task": job, "attempt": task.request.retries + 1, "error": str(e)},
            )
        raise
    finally:
        telegram.close()
        db.close()


def _notify(task, warning: ExpiryWarning) -> dict:
    return _run(task, f"notify_{warning.kind}", lambda svc: svc.notify_expiring(warning))


@celery_app.task(
    bind=True,
    name="pixshop.workers.tasks.subscriptions.notify_expiring_7_days",
    time_limit=1800,
    soft_time_limit=1750,
    **RETRY_POLICY,
)
def notify_expiring_7_days(self) -> dict:
    return _notify(self, WARNING_7_DAYS)


@celery_app.task(
    bind=True,
    name="pixshop.workers.tasks.subscriptions.notify_expiring_1_day",
    time_limit=1800,
    soft_time_limit=1750,
    **RETRY_POLICY,
)
def notify_expiring_1_day(self) -> dict:
    return _notify(self, WARNING_1_DAY)


@celery_app.task(
    bind=True,
    name="pixshop.workers.tasks.subscriptions.process_expired_subscriptions",
    time_limit=3000,
    soft_time_limit=2950,
    **RETRY_POLICY,
)
def process_expired_subscriptions(self) -> dict:
    """Delete delivered messages of lapsed subscriptions and mark them expired."""
    return _run(self, "process_expired", lambda svc: svc.process_expired())
