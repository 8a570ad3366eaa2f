"""Scheduler schemas for API requests and responses."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SchedulerStatusResponse(BaseModel):
    site_code: str
    is_enabled: bool = False
    run_interval_minutes: int = 10
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error_message: Optional[str] = None
    next_run_at: Optional[datetime] = None
    batch_token_valid: bool = False

    class Config:
        from_attributes = True


class SchedulerUpdate(BaseModel):
    """Enable/disable with an optional interval; the interval is clamped to 1-60 minutes."""

    enabled: bool
    interval_minutes: Optional[int] = Field(None, description="Run interval in minutes")


class SchedulerLogEntryResponse(BaseModel):
    timestamp: datetime
    level: str
    site_code: Optional[str] = None
    message: str
    formatted: str


class SchedulerLogsResponse(BaseModel):
    data: List[SchedulerLogEntryResponse]
    total: int
