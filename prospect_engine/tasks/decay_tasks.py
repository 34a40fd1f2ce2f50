"""Scheduled score decay."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from prospect_engine.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def run_decay_sweep_task(self, now: Optional[str] = None):
    """Run one decay sweep. `now` is an ISO timestamp, mainly for backfills."""
    return asyncio.run(_run_sweep(datetime.fromisoformat(now) if now else None))


async def _run_sweep(now: Optional[datetime] = None) -> dict:
    from prospect_engine.services.decay_sweep import DecaySweeper

    report = await DecaySweeper().run(now=now)
    if report.conflicts:
        logger.warning(f"Decay sweep left {report.conflicts} prospects for the next run")
    return report.to_dict()
