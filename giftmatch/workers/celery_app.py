"""Celery application: trending refresh (beat) and embedding backfill."""

import logging

from celery import Celery

from giftmatch.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    "giftmatch",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_track_started=True,

    # A refresh must finish well inside its own interval; a full backfill may run long
    task_time_limit=600,
    task_soft_time_limit=540,
    task_annotations={
        "giftmatch.workers.tasks.refresh_trending": {
            "time_limit": settings.trending_refresh_seconds,
            "soft_time_limit": max(settings.trending_refresh_seconds - 30, 30),
        },
        "giftmatch.workers.tasks.index_product_embeddings": {
            "time_limit": 3600,
            "soft_time_limit": 3300,
        },
    },
    task_routes={
        "giftmatch.workers.tasks.index_product_embeddings": {"queue": "embeddings"},
    },

    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_connection_retry_on_startup=True,

    beat_schedule={
        "refresh-trending": {
            "task": "giftmatch.workers.tasks.refresh_trending",
            "schedule": float(settings.trending_refresh_seconds),
        },
    },
)

celery_app.autodiscover_tasks(["giftmatch.workers"])

logger.info(f"Celery app initialized with broker: {settings.celery_broker_url}")
