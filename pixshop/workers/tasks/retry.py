"""
Shared retry policy: 3 attempts in total, exponential backoff from celery_task_retry_delay.
"""
from pixshop.core.config import settings

RETRY_POLICY = {
    "autoretry_for": (Exception,),
    "retry_backoff": settings.celery_task_retry_delay,
    "retry_backoff_max": 600,
    "retry_jitter": False,
    "max_retries": settings.celery_task_max_retries - 1,
}


def is_last_attempt(task) -> bool:
    return task.request.retries >= task.max_retries
