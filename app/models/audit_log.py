"""Audit log model for operator actions."""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from sqlalchemy.sql import func
from app.database import Base


class AuditLog(Base):
    """Who triggered a sync, changed a status, reset data or toggled a scheduler."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Action details
    action = Column(String(100), nullable=False)  # 'sync_triggered', 'status_changed', 'sync_data_reset', ...
    site_code = Column(String(50), nullable=True)
    entity_type = Column(String(50), nullable=True)  # 'sync_order', 'scheduler', 'sync_run'
    entity_id = Column(Integer, nullable=True)

    # Operator and request context
    actor = Column(String(100), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_logs_site_action', 'site_code', 'action'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', site='{self.site_code}')>"
