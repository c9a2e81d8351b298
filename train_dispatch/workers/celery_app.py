from celery import Celery

from train_dispatch.core.config import settings

celery_app = Celery("train_dispatch", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    result_expires=settings.celery_result_expires_seconds,
    beat_schedule={
        "purge-expired-bans": {
            "task": "train_dispatch.workers.tasks.purge_expired_bans",
            "schedule": float(settings.ban_purge_interval_seconds),
        },
    },
)
