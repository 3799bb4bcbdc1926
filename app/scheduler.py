# app/scheduler.py
from datetime import datetime, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import OperationalError
from . import config
from .api.deps import get_search_cache
from .db import SessionLocal
from .services import ListingService
from .utils import logger, retry

scheduler = BackgroundScheduler(timezone=config.BUSINESS_TIMEZONE)


@retry(OperationalError, tries=3, delay=2, backoff=2)
def expire_listings(session_factory=SessionLocal, cache=None) -> int:
    db = session_factory()
    try:
        service = ListingService(db, cache or get_search_cache())
        return service.expire_listings(datetime.now(timezone.utc))
    finally:
        db.close()


def start_scheduler():
    if scheduler.running:
        return scheduler
    scheduler.add_job(expire_listings, "interval", minutes=config.EXPIRY_CHECK_MINUTES,
                      id="expire_listings", replace_existing=True)
    scheduler.start()
    logger.info("Scheduler started")
    return scheduler
