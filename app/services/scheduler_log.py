"""In-memory activity feed of the scheduler for the operator dashboard."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Deque, List, Optional, Set

from app.config import settings
from app.utils.clock import to_display, utc_now

log = logging.getLogger(__name__)


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


_PY_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SUCCESS: logging.INFO,
}


@dataclass(frozen=True)
class SchedulerLogEntry:
    timestamp: datetime
    level: LogLevel
    site_code: Optional[str]
    message: str

    def format(self) -> str:
        stamp = to_display(self.timestamp).strftime("%H:%M:%S.%f")[:-3]
        site = f" [{self.site_code}]" if self.site_code else ""
        return f"[{stamp}] {self.level.value}{site} {self.message}"


class SchedulerLogService:
    """Bounded ring of recent entries plus live subscribers.

    Entries are mirrored to the standard logger so they also end up in the
    process log.
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size or settings.scheduler_log_size
        self._entries: Deque[SchedulerLogEntry] = deque(maxlen=self.max_size)
        self._subscribers: Set[asyncio.Queue] = set()

    def add(self, level: LogLevel, message: str, site_code: Optional[str] = None) -> SchedulerLogEntry:
        entry = SchedulerLogEntry(timestamp=utc_now(), level=level, site_code=site_code, message=message)
        self._entries.append(entry)
        log.log(_PY_LEVELS[level], f"[Scheduler]{f' [{site_code}]' if site_code else ''} {message}")
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(entry)
            except asyncio.QueueFull:
                log.debug("Dropping scheduler log entry for a slow subscriber")
        return entry

    def debug(self, message: str, site_code: Optional[str] = None) -> SchedulerLogEntry:
        return self.add(LogLevel.DEBUG, message, site_code)

    def info(self, message: str, site_code: Optional[str] = None) -> SchedulerLogEntry:
        return self.add(LogLevel.INFO, message, site_code)

    def warn(self, message: str, site_code: Optional[str] = None) -> SchedulerLogEntry:
        return self.add(LogLevel.WARN, message, site_code)

    def error(self, message: str, site_code: Optional[str] = None) -> SchedulerLogEntry:
        return self.add(LogLevel.ERROR, message, site_code)

    def success(self, message: str, site_code: Optional[str] = None) -> SchedulerLogEntry:
        return self.add(LogLevel.SUCCESS, message, site_code)

    def get_logs(self) -> List[SchedulerLogEntry]:
        """All buffered entries, oldest first."""
        return list(self._entries)

    def get_logs_by_site_code(self, site_code: str, limit: int = 50) -> List[SchedulerLogEntry]:
        """Most recent entries for one site (plus site-less ones), oldest first."""
        matching = [e for e in self._entries if e.site_code is None or e.site_code == site_code]
        return matching[-limit:] if limit else matching

    def clear(self) -> None:
        self._entries.clear()

    def subscribe(self, max_queue: int = 100) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def follow(
        self,
        site_code: str,
        is_disconnected: Callable[[], Awaitable[bool]],
        keepalive_seconds: float = 15.0,
    ) -> AsyncIterator[Optional[SchedulerLogEntry]]:
        """Live entries for one site (plus site-less ones); yields None when idle for a keepalive."""
        queue = self.subscribe()
        try:
            while not await is_disconnected():
                try:
                    entry = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                except asyncio.TimeoutError:
                    yield None
                    continue
                if entry.site_code is None or entry.site_code == site_code:
                    yield entry
        finally:
            self.unsubscribe(queue)


# Shared by the scheduler loop and the API
scheduler_log = SchedulerLogService()
