"""
Celery application: broker and result backend from settings.
Tasks are in pixshop.workers.tasks (content delivery, subscription jobs).
"""
from celery import Celery
from celery.schedules import crontab

from pixshop.core.config import settings

celery_app = Celery(
    "pixshop",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "pixshop.workers.tasks.deliver_purchase",
        "pixshop.workers.tasks.subscriptions",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=3600,
    result_expires=86400,
    timezone="UTC",
    beat_schedule={
        "subscriptions-notify-7-days": {
            "task": "pixshop.workers.tasks.subscriptions.notify_expiring_7_days",
            "schedule": crontab(hour=settings.subscription_notify_hour, minute=0),
        },
        "subscriptions-notify-1-day": {
            "task": "pixshop.workers.tasks.subscriptions.notify_expiring_1_day",
            "schedule": crontab(hour=settings.subscription_notify_hour, minute=0),
        },
        "redeliver-stalled-purchases": {
            "task": "pixshop.workers.tasks.deliver_purchase.redeliver_stalled",
            "schedule": crontab(minute="*/10"),
        },
        "subscriptions-process-expired": {
            "task": "pixshop.workers.tasks.subscriptions.process_expired_subscriptions",
            "schedule": crontab(minute=0),
        },
    },
)

celery_app.conf.task_routes = {
    "pixshop.workers.tasks.deliver_purchase.deliver_purchase": {"queue": "delivery"},
}
