"""Celery application with the daily decay sweep on the beat schedule.

    celery -A prospect_engine.tasks.celery_app worker --beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from prospect_engine.config import get_settings

settings = get_settings()

celery_app = Celery(
    "prospect_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["prospect_engine.tasks.decay_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "score-decay-sweep": {
            "task": "prospect_engine.tasks.decay_tasks.run_decay_sweep_task",
            "schedule": crontab(hour=settings.decay_sweep_hour, minute=0),
        },
    },
)
