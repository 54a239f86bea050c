"""
Celery configuration for marketplace maintenance jobs.

Run with:
    celery -A incubus.celery_worker.celery_app worker --loglevel=info
    celery -A incubus.celery_worker.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from incubus.core.config import get_settings

_settings = get_settings()

celery_app = Celery(
    "incubus",
    broker=_settings.CELERY_BROKER_URL,
    backend=_settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    include=[
        "incubus.tasks.system_tasks",
        "incubus.tasks.maintenance_tasks",
    ],
)

celery_app.conf.beat_schedule = {
    "marketplace-expire-listings": {
        "task": "incubus.tasks.maintenance_tasks.expire_marketplace_listings",
        "schedule": 300.0,
    },
    "organizations-expire-invitations": {
        "task": "incubus.tasks.maintenance_tasks.expire_invitations",
        "schedule": 900.0,
    },
    "auth-prune-sessions": {
        "task": "incubus.tasks.maintenance_tasks.prune_sessions",
        "schedule": crontab(hour=4, minute=0),
    },
    "system-heartbeat": {
        "task": "incubus.tasks.system_tasks.heartbeat",
        "schedule": 600.0,
    },
}
