# homematch/scheduler.py
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from . import config
from .services import run_zillow_ingest
from .utils import logger

scheduler: Optional[BackgroundScheduler] = None


def scheduled_ingest():
    try:
        run_zillow_ingest()
    except Exception as e:
        logger.exception("Scheduled ingest failed: %s", e)


def start_scheduler() -> Optional[BackgroundScheduler]:
    """Start the periodic ingest job when ``ENABLE_SCHEDULER=1``."""
    global scheduler
    if not config.ENABLE_SCHEDULER or scheduler is not None:
        return scheduler
    scheduler = BackgroundScheduler()
    scheduler.add_job(scheduled_ingest, 'interval', hours=config.INGEST_INTERVAL_HOURS)
    scheduler.start()
    logger.info("Scheduler started (every %s h)", config.INGEST_INTERVAL_HOURS)
    return scheduler


def shutdown_scheduler() -> None:
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
