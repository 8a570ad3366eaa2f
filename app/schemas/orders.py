from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class StatusChangeRequest(BaseModel):
    status: str
    carryover_round: Optional[int] = None  # Only kept for '이월'


class OrderStatusResponse(BaseModel):
    id: int
    site_code: str
    order_no: int
    payment_status: Optional[str] = None
    management_status: str
    carryover_round: Optional[int] = None
    notification_sent: bool = False
    notification_sent_at: Optional[datetime] = None
    is_manual_order: bool = False

    class Config:
        from_attributes = True


class AvailableStatusesResponse(BaseModel):
    current: str
    available: List[str]


class StatusHistoryResponse(BaseModel):
    id: int
    previous_status: Optional[str] = None
    new_status: str
    carryover_round: Optional[int] = None
    changed_by: str
    changed_at: datetime

    class Config:
        from_attributes = True


class PreferredDatesResponse(BaseModel):
    site_code: str
    preferred_dates: List[str]
