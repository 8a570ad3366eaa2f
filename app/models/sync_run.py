"""Sync run model for tracking synchronization executions."""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.sql import func
from app.database import Base


class SyncRun(Base):
    """Sync execution history and status tracking.

    Manual runs keep one row each. Scheduled runs reuse a single rolling row
    per site so the table does not grow every tick.
    """

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    site_code = Column(String(50), nullable=False, index=True)
    sync_type = Column(String(20), nullable=False, default='ORDERS')

    # Execution details
    trigger_type = Column(String(50), nullable=False, default='manual')  # 'manual', 'scheduled'
    status = Column(String(50), nullable=False)  # 'running', 'completed', 'failed'
    window_start = Column(DateTime(timezone=True), nullable=True)
    window_end = Column(DateTime(timezone=True), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    last_progress_at = Column(DateTime(timezone=True), nullable=True)  # Bumped on every saved checkpoint

    # Statistics
    entries_fetched = Column(Integer, default=0, nullable=False)  # Total reported by the list endpoint
    entries_synced = Column(Integer, default=0, nullable=False)
    entries_failed = Column(Integer, default=0, nullable=False)
    entries_new = Column(Integer, default=0, nullable=False)
    entries_updated = Column(Integer, default=0, nullable=False)

    # Error information
    error_message = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_sync_runs_site_status', 'site_code', 'status'),
    )

    def __repr__(self):
        return f"<SyncRun(id={self.id}, site='{self.site_code}', trigger='{self.trigger_type}', status='{self.status}', synced={self.entries_synced})>"
