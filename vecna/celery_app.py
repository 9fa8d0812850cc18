"""Celery app configuration for the Vecna pipeline workers."""

from __future__ import annotations

from celery import Celery, signals
from celery.schedules import crontab

from .config import settings
from .db import get_session
from .logging import logger

QUEUE = "vecna"

celery_config = {
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": "UTC",
    "enable_utc": True,
    "task_track_started": True,
    "worker_prefetch_multiplier": 1,
    # Generation can take several minutes per game; a family run covers many games
    "task_time_limit": 7200,
    "task_soft_time_limit": 6900,
    "task_default_queue": QUEUE,
}

app = Celery(
    "vecna-pipeline",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["vecna.jobs.tasks"],
)
app.conf.update(**celery_config)
app.conf.task_routes = {
    "advance_game": {"queue": QUEUE, "routing_key": QUEUE},
    "process_family": {"queue": QUEUE, "routing_key": QUEUE},
    "reconcile_stuck_games": {"queue": QUEUE, "routing_key": QUEUE},
}
app.conf.beat_schedule = {
    "reconcile-stuck-games-every-5-min": {
        "task": "reconcile_stuck_games",
        "schedule": crontab(minute="*/5"),
        "options": {"queue": QUEUE, "routing_key": QUEUE},
    },
}


@signals.worker_ready.connect
def on_worker_ready(sender=None, **kwargs):
    """Release games left in a processing state by a worker that died mid-call."""
    from .pipeline.reconcile import reconcile_expired_leases

    worker_name = getattr(sender, "hostname", None) or str(sender) if sender else "unknown"
    logger.info("celery_worker_ready", worker=worker_name)
    try:
        with get_session() as session:
            demoted = reconcile_expired_leases(session)
        logger.info("startup_reconcile_completed", demoted=len(demoted))
    except Exception as exc:
        logger.exception("startup_reconcile_failed", error=str(exc))
