"""APScheduler jobs — carrier status reconciliation for faxes that never settled."""

from datetime import timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.application.services.fax_service import reconcile_unsettled
from app.application.services.provider_dispatcher import ProviderDispatcher
from app.config import get_settings
from app.domain.models.fax_record import FaxRecord
from app.infrastructure.database import SessionLocal
from app.infrastructure.repositories.fax_repository import SQLAlchemyFaxRepository
from app.infrastructure.storage import build_storage

settings = get_settings()
logger = structlog.get_logger(__name__)

scheduler = AsyncIOScheduler(timezone=timezone.utc)


async def reconcile_faxes_job():
    """Periodic job: poll carriers for recent faxes stuck in a non-terminal status."""
    logger.info("Running fax reconciliation job", lookback_hours=settings.RECONCILE_LOOKBACK_HOURS)

    db = SessionLocal()
    try:
        repo = SQLAlchemyFaxRepository(db, FaxRecord)
        dispatcher = ProviderDispatcher(settings, build_storage(settings))
        result = await reconcile_unsettled(repo, dispatcher, settings.RECONCILE_LOOKBACK_HOURS)
        logger.info("Fax reconciliation job finished", **result)
    except Exception:
        logger.exception("Fax reconciliation job failed")
    finally:
        db.close()


def start_scheduler():
    """Start the APScheduler with the reconciliation interval job."""
    scheduler.add_job(
        reconcile_faxes_job,
        trigger=IntervalTrigger(minutes=settings.RECONCILE_INTERVAL_MINUTES, timezone=timezone.utc),
        id="fax_reconciliation",
        name=f"Fax reconciliation (every {settings.RECONCILE_INTERVAL_MINUTES} mins)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info("Scheduler started", interval_minutes=settings.RECONCILE_INTERVAL_MINUTES)


def stop_scheduler():
    """Stop the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
