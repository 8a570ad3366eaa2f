"""Append-only audit trail of management status changes."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class SyncOrderStatusHistory(Base):
    """A single management status change of a SyncOrder."""

    __tablename__ = "sync_order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    sync_order_id = Column(Integer, ForeignKey("sync_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    site_code = Column(String(50), nullable=False, index=True)
    previous_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=False)
    carryover_round = Column(Integer, nullable=True)
    changed_by = Column(String(100), nullable=False, default="admin")  # 'system' for automatic transitions
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("SyncOrder", back_populates="status_history")

    def __repr__(self):
        return f"<SyncOrderStatusHistory(order={self.sync_order_id}, '{self.previous_status}' -> '{self.new_status}', by='{self.changed_by}')>"
