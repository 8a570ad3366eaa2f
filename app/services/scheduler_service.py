"""Per-site scheduler state: enable/disable, interval and run bookkeeping."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.constants.sync_reasons import ReasonCode
from app.exceptions import CredentialUnavailableError
from app.models.scheduler_state import SchedulerState
from app.services.credential_coordinator import BatchCredentialService
from app.utils.clock import as_utc, utc_now

log = logging.getLogger(__name__)

ORDER_SYNC = 'ORDER_SYNC'


def clamp_interval(minutes: Optional[int]) -> int:
    if minutes is None:
        return settings.scheduler_default_interval_minutes
    return max(settings.scheduler_min_interval_minutes, min(settings.scheduler_max_interval_minutes, minutes))


class SchedulerService:
    def __init__(self, db: Session, batch_credentials: Optional[BatchCredentialService] = None):
        self.db = db
        self.batch_credentials = batch_credentials

    def get_state(self, site_code: str) -> Optional[SchedulerState]:
        return (
            self.db.query(SchedulerState)
            .filter(SchedulerState.site_code == site_code, SchedulerState.scheduler_type == ORDER_SYNC)
            .first()
        )

    def get_status(self, site_code: str) -> SchedulerState:
        """Stored state, or an unsaved disabled default."""
        return self.get_state(site_code) or SchedulerState(
            site_code=site_code,
            scheduler_type=ORDER_SYNC,
            is_enabled=False,
            run_interval_minutes=settings.scheduler_default_interval_minutes,
        )

    def list_enabled(self) -> List[SchedulerState]:
        return (
            self.db.query(SchedulerState)
            .filter(SchedulerState.is_enabled.is_(True), SchedulerState.scheduler_type == ORDER_SYNC)
            .all()
        )

    @staticmethod
    def is_due(state: SchedulerState, now: Optional[datetime] = None) -> bool:
        if state.next_run_at is None:
            return True
        return as_utc(state.next_run_at) <= (now or utc_now())

    def _ensure_batch_token(self, site_code: str) -> None:
        if self.batch_credentials is None or not self.batch_credentials.has_obtainable_token(site_code):
            log.warning(f"Cannot enable scheduler for site {site_code}: no batch token available")
            raise CredentialUnavailableError(ReasonCode.BATCH_CREDENTIAL_MISSING, {"site_code": site_code})

    def set_enabled(self, site_code: str, enabled: bool, interval_minutes: Optional[int] = None) -> SchedulerState:
        """Enable or disable the site's scheduler. Enabling requires an obtainable batch token."""
        if enabled:
            self._ensure_batch_token(site_code)

        state = self.get_state(site_code)
        if state is None:
            state = SchedulerState(site_code=site_code, scheduler_type=ORDER_SYNC)
            self.db.add(state)
            interval = clamp_interval(interval_minutes)
        else:
            interval = clamp_interval(interval_minutes if interval_minutes is not None else state.run_interval_minutes)

        state.is_enabled = enabled
        state.run_interval_minutes = interval
        # Due on the next tick when enabled
        state.next_run_at = utc_now() if enabled else None
        self.db.commit()
        self.db.refresh(state)
        log.info(f"Scheduler for site {site_code} {'enabled' if enabled else 'disabled'} (interval {interval}min)")
        return state

    def toggle(self, site_code: str) -> SchedulerState:
        current = self.get_state(site_code)
        return self.set_enabled(site_code, not (current.is_enabled if current else False))

    def update_interval(self, site_code: str, interval_minutes: int) -> Optional[SchedulerState]:
        state = self.get_state(site_code)
        if state is None:
            return None
        state.run_interval_minutes = clamp_interval(interval_minutes)
        self.db.commit()
        self.db.refresh(state)
        log.info(f"Scheduler interval for site {site_code} set to {state.run_interval_minutes}min")
        return state

    def _touch(self, site_code: str) -> Optional[SchedulerState]:
        state = self.get_state(site_code)
        if state is None:
            return None
        now = utc_now()
        state.last_run_at = now
        state.next_run_at = now + timedelta(minutes=state.run_interval_minutes or settings.scheduler_default_interval_minutes)
        return state

    def mark_run(self, site_code: str) -> None:
        if self._touch(site_code) is not None:
            self.db.commit()

    def mark_success(self, site_code: str) -> None:
        state = self._touch(site_code)
        if state is None:
            return
        state.last_success_at = state.last_run_at
        state.last_error_message = None
        self.db.commit()

    def mark_error(self, site_code: str, message: str) -> None:
        state = self._touch(site_code)
        if state is None:
            return
        state.last_error_message = (message or "Unknown error")[:2000]
        self.db.commit()
