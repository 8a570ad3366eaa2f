"""Database models."""

from app.models.store import Store
from app.models.credential import OAuthToken, BatchOAuthToken
from app.models.sync_order import SyncOrder
from app.models.status_history import SyncOrderStatusHistory
from app.models.category import SyncCategory, SyncOrderCategory
from app.models.sync_run import SyncRun
from app.models.scheduler_state import SchedulerState
from app.models.audit_log import AuditLog

__all__ = [
    "Store",
    "OAuthToken",
    "BatchOAuthToken",
    "SyncOrder",
    "SyncOrderStatusHistory",
    "SyncCategory",
    "SyncOrderCategory",
    "SyncRun",
    "SchedulerState",
    "AuditLog",
]
