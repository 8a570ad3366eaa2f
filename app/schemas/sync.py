from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class SyncProgressResult(BaseModel):
    new_records: int = 0
    updated_records: int = 0
    total_records: int = 0
    failed_records: int = 0


class SyncProgressEvent(BaseModel):
    status: str  # 'IN_PROGRESS', 'COMPLETED', 'FAILED'
    message: str
    progress: int = 0  # 0-100
    result: Optional[SyncProgressResult] = None


class IncrementalSyncResult(BaseModel):
    success: bool
    skipped: bool = False  # Another run for the site was active
    synced_count: int = 0
    failed_count: int = 0
    new_count: int = 0
    updated_count: int = 0
    window_start: Optional[str] = None  # Display timezone
    window_end: Optional[str] = None
    message: str = ""


class SyncRunResponse(BaseModel):
    id: int
    site_code: str
    sync_type: str
    trigger_type: str
    status: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    entries_fetched: int = 0
    entries_synced: int = 0
    entries_failed: int = 0
    entries_new: int = 0
    entries_updated: int = 0
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class PaginatedSyncRuns(BaseModel):
    data: List[SyncRunResponse]
    total: int


class SyncResetResult(BaseModel):
    status_history_deleted: int = 0
    order_category_deleted: int = 0
    order_deleted: int = 0
    category_deleted: int = 0
    run_deleted: int = 0
    message: str = "초기화가 완료되었습니다."


class RealtimeCheckRequest(BaseModel):
    order_ids: List[int] = Field(default_factory=list)


class RealtimeOrderUpdate(BaseModel):
    id: int
    order_no: int
    payment_status: Optional[str] = None
    management_status: Optional[str] = None
    notification_eligible: bool = False


class RealtimeCheckResult(BaseModel):
    checked_count: int = 0
    skipped_count: int = 0
    updated_orders: List[RealtimeOrderUpdate] = Field(default_factory=list)


class ManualOrderRequest(BaseModel):
    name: str = ""
    gender: str = ""  # '남' or '여'
    phone: str = ""  # 01012345678
    birth_year: str = ""  # YYYY
    job: Optional[str] = None
    preferred_date: str = ""  # e.g. '12월 27일 (토)'
    prod_no: Optional[int] = None
    prod_name: Optional[str] = None


class ManualOrderResult(BaseModel):
    order_id: int
    order_no: int
    message: str = "주문이 생성되었습니다."
