"""Query window planning for order syncs.

Manual runs re-read the last ``sync_days`` days. Scheduled runs re-scan a
fixed overlapping window (``sync_overlap_hours``) on every tick instead of
resuming from a cursor: Imweb orders change in place after creation (payment
completes, cancellations), and only a rolling window picks those changes up.
An order created exactly ``overlap`` ago is still inside the window.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator, Optional, Set

from app.config import settings
from app.schemas.imweb import ImwebOrder
from app.utils.clock import API_FORMAT, DISPLAY_FORMAT, as_utc, to_display, utc_now

log = logging.getLogger(__name__)


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass(frozen=True)
class SyncWindow:
    """Half-open ``[start, end)`` range; both edges are UTC-aware."""

    mode: SyncMode
    start: datetime
    end: datetime

    @property
    def start_api(self) -> str:
        return self.start.strftime(API_FORMAT)

    @property
    def end_api(self) -> str:
        return self.end.strftime(API_FORMAT)

    @property
    def start_local(self) -> datetime:
        return to_display(self.start)

    @property
    def end_local(self) -> datetime:
        return to_display(self.end)

    @property
    def start_display(self) -> str:
        return self.start_local.strftime(DISPLAY_FORMAT)

    @property
    def end_display(self) -> str:
        return self.end_local.strftime(DISPLAY_FORMAT)

    def __str__(self) -> str:
        return f"{self.start_display} ~ {self.end_display} (API: {self.start_api} ~ {self.end_api})"


def parse_wtime(wtime: Optional[str]) -> Optional[datetime]:
    """Parse an Imweb creation timestamp into a UTC-aware datetime.

    Accepts ``2025-04-24T00:00:00.000Z``, ``2025-04-24T00:00:00Z``,
    ``2025-04-24T00:00:00[.fff][+09:00]`` and ``2025-04-24 00:00:00``.
    Naive values are UTC. Returns None when the value cannot be parsed.
    """
    if not wtime or not wtime.strip():
        return None
    value = wtime.strip()
    try:
        if value.endswith("Z"):
            parsed = datetime.strptime(value[:-1].split(".")[0], "%Y-%m-%dT%H:%M:%S")
        elif "T" in value:
            parsed = datetime.fromisoformat(value)
        else:
            parsed = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    except ValueError as e:
        log.debug(f"Failed to parse order wtime '{wtime}': {e}")
        return None
    return as_utc(parsed)


class WindowPlanner:
    """Computes sync windows and filters upstream pages against them."""

    def __init__(
        self,
        lookback_days: Optional[int] = None,
        overlap_hours: Optional[int] = None,
    ):
        self.lookback_days = lookback_days if lookback_days is not None else settings.sync_days
        self.overlap = timedelta(hours=overlap_hours if overlap_hours is not None else settings.sync_overlap_hours)

    def plan(self, mode: SyncMode, now: Optional[datetime] = None, days: Optional[int] = None) -> SyncWindow:
        end = as_utc(now) if now else utc_now()
        if mode == SyncMode.FULL:
            lookback = timedelta(days=days if days is not None else self.lookback_days)
        else:
            lookback = self.overlap
        window = SyncWindow(mode=mode, start=end - lookback, end=end)
        log.debug(f"Planned {mode.value} window: {window}")
        return window

    def full_window(self, now: Optional[datetime] = None, days: Optional[int] = None) -> SyncWindow:
        return self.plan(SyncMode.FULL, now=now, days=days)

    def incremental_window(self, now: Optional[datetime] = None) -> SyncWindow:
        return self.plan(SyncMode.INCREMENTAL, now=now)

    @staticmethod
    def is_before_window(wtime: Optional[str], window: SyncWindow) -> bool:
        """True only when the creation time is known and earlier than the window start.

        The upstream filter works at a coarser precision than the window, so
        pages can contain older orders. Unparsable timestamps are kept.
        """
        created = parse_wtime(wtime)
        if created is None:
            return False
        return to_display(created) < window.start_local

    def filter_page(
        self,
        orders: Iterable[ImwebOrder],
        window: SyncWindow,
        seen: Set[int],
    ) -> Iterator[ImwebOrder]:
        """Yield orders of one page in upstream order, skipping out-of-window and repeated ones.

        ``seen`` is shared across the pages of one run and updated in place.
        """
        for order in orders:
            if order.order_no is None:
                log.debug("Skipping order without orderNo")
                continue
            if self.is_before_window(order.wtime, window):
                log.trace(f"Skipping order {order.order_no}: created {order.wtime} before window start")
                continue
            if order.order_no in seen:
                log.debug(f"Skipping order {order.order_no}: already processed in this run")
                continue
            seen.add(order.order_no)
            yield order
