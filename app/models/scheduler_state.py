"""Per-site scheduler configuration and bookkeeping."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Index
from sqlalchemy.sql import func
from app.database import Base


class SchedulerState(Base):
    """Periodic incremental sync state for one site."""

    __tablename__ = "scheduler_states"

    id = Column(Integer, primary_key=True, index=True)
    site_code = Column(String(50), nullable=False)
    scheduler_type = Column(String(50), nullable=False, default='ORDER_SYNC')
    is_enabled = Column(Boolean, nullable=False, default=False)
    run_interval_minutes = Column(Integer, nullable=False, default=10)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    last_error_message = Column(Text, nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_scheduler_states_site_type', 'site_code', 'scheduler_type', unique=True),
    )

    def __repr__(self):
        return f"<SchedulerState(site='{self.site_code}', enabled={self.is_enabled}, interval={self.run_interval_minutes})>"
