"""APScheduler integration for the periodic incremental sync."""

import asyncio
import logging
from typing import List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.connectors.imweb_connector import ImwebConnector
from app.database import get_db
from app.services.credential_coordinator import CredentialCoordinator
from app.services.scheduler_log import scheduler_log
from app.services.scheduler_service import SchedulerService
from app.services.sync_service import SyncService
from app.utils.clock import utc_now

log = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

TICK_JOB_ID = "scheduler_tick"


async def run_site_sync(site_code: str) -> None:
    """One scheduled run for one site, with its own session and HTTP client."""
    db_gen = get_db()
    db = next(db_gen)
    connector = ImwebConnector()

    try:
        credentials = CredentialCoordinator.create(db, connector)
        schedulers = SchedulerService(db, credentials.batch)
        sync_service = SyncService(db, connector, credentials=credentials)

        state = schedulers.get_state(site_code)
        interval = state.run_interval_minutes if state else settings.scheduler_default_interval_minutes
        log.info(f"Running scheduled sync for site {site_code} (interval: {interval}min)")
        scheduler_log.info(f"========== 증분 동기화 시작 ({interval}분 간격) ==========", site_code)
        schedulers.mark_run(site_code)

        try:
            result = await sync_service.run_incremental_sync(site_code)
        except Exception as e:
            db.rollback()
            log.error(f"Scheduled sync failed for site {site_code}: {e}")
            scheduler_log.error(f"동기화 실패: {e}", site_code)
            schedulers.mark_error(site_code, str(e))
            return

        if not result.skipped:
            schedulers.mark_success(site_code)
        scheduler_log.info("========== 증분 동기화 종료 ==========", site_code)
    finally:
        await connector.close()
        db.close()


def _due_sites() -> List[str]:
    db_gen = get_db()
    db = next(db_gen)
    try:
        now = utc_now()
        due = []
        for state in SchedulerService(db).list_enabled():
            if SchedulerService.is_due(state, now):
                due.append(state.site_code)
            else:
                log.debug(f"Not yet time to run for site {state.site_code} (next: {state.next_run_at})")
        return due
    finally:
        db.close()


async def scheduler_tick() -> None:
    """Start a run for every enabled site whose next run is due."""
    log.debug("Scheduler tick - checking for enabled schedulers")
    try:
        due = _due_sites()
    except Exception as e:
        log.error(f"Failed to load scheduler states: {e}", exc_info=True)
        return

    if not due:
        log.debug("No scheduled sync due")
        return

    results = await asyncio.gather(*(run_site_sync(site_code) for site_code in due), return_exceptions=True)
    for site_code, outcome in zip(due, results):
        if isinstance(outcome, Exception):
            log.error(f"Scheduled sync for site {site_code} crashed: {outcome}", exc_info=outcome)
            scheduler_log.error(f"동기화 실패: {outcome}", site_code)


def start_scheduler():
    """Start the APScheduler with the fixed-rate tick job."""
    scheduler.add_job(
        scheduler_tick,
        trigger=IntervalTrigger(seconds=settings.scheduler_tick_seconds),
        id=TICK_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    log.info(f"Scheduler tick registered every {settings.scheduler_tick_seconds}s")

    if not scheduler.running:
        scheduler.start()
        log.info("APScheduler started successfully")


def shutdown_scheduler():
    """Shutdown the APScheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        log.info("APScheduler shut down successfully")
