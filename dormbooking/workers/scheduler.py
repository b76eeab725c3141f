from datetime import timedelta
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import get_settings
from ..core.clock import Clock
from ..db.session import SessionLocal
from ..services import quota_cache

logger = logging.getLogger(__name__)

# Weeks already closed keep their counters; only recent ones are repaired
RECONCILE_LOOKBACK = timedelta(days=7)


def reconcile_quotas() -> int:
    settings = get_settings()
    since = Clock(settings.timezone).today() - RECONCILE_LOOKBACK
    with SessionLocal() as db:
        repaired = quota_cache.reconcile_all(db, since)
    logger.info("Weekly quota counters reconciled", extra={"weeks": repaired})
    return repaired


def get_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        reconcile_quotas,
        "interval",
        minutes=settings.quota_reconcile_interval_min,
    )
    return scheduler
