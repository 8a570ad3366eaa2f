"""Operator-facing errors raised by the sync services.

All of them are ValueErrors carrying a ReasonCode so endpoints can map them
to a status code and a readable message.
"""

from typing import Dict, Optional

from app.constants.sync_reasons import ReasonCode, explain_reason


class SyncError(ValueError):
    """Base class for rejected sync/workflow operations."""

    status_code = 400

    def __init__(self, code: ReasonCode, context: Optional[Dict] = None, message: Optional[str] = None):
        self.code = code
        self.context = context or {}
        super().__init__(message or explain_reason(code, self.context))


class SyncInProgressError(SyncError):
    status_code = 409

    def __init__(self, site_code: str):
        super().__init__(ReasonCode.SYNC_IN_PROGRESS, {"site_code": site_code})


class InvalidTransitionError(SyncError):
    pass


class ManualOrderError(SyncError):
    pass


class CredentialUnavailableError(SyncError):
    pass


class OrderNotFoundError(SyncError):
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__(ReasonCode.ORDER_NOT_FOUND, {"order_id": order_id})
