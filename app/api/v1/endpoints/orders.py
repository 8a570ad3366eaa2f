from typing import Annotated, List
import logging
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.auth import get_current_active_operator
from app.connectors.base import BaseConnector
from app.connectors.imweb_connector import get_imweb_connector
from app.database import get_db
from app.schemas.auth import Operator
from app.schemas.orders import (
    AvailableStatusesResponse,
    OrderStatusResponse,
    PreferredDatesResponse,
    StatusChangeRequest,
    StatusHistoryResponse,
)
from app.schemas.sync import ManualOrderRequest, ManualOrderResult, RealtimeCheckRequest, RealtimeCheckResult
from app.services.status_workflow import StatusWorkflow
from app.services.sync_service import SyncService
from app.utils.audit_logger import record_operator_action

log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{order_id}/statuses", response_model=AvailableStatusesResponse)
async def get_available_statuses(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Statuses the operator may pick for this order."""
    workflow = StatusWorkflow(db)
    order = workflow.get_order(order_id)
    return AvailableStatusesResponse(
        current=order.management_status,
        available=workflow.available_statuses(order.management_status),
    )


@router.post("/{order_id}/status", response_model=OrderStatusResponse)
async def change_order_status(
    order_id: int,
    request: StatusChangeRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Manual management status change; invalid transitions return 400 with the reason."""
    actor = current_user.username if current_user else "admin"
    workflow = StatusWorkflow(db)
    previous = workflow.get_order(order_id).management_status
    order = workflow.change_status(order_id, request.status, request.carryover_round, changed_by=actor)
    record_operator_action(
        db,
        http_request,
        action="status_changed",
        site_code=order.site_code,
        entity_type="sync_order",
        entity_id=order.id,
        actor=actor,
        details={"from": previous, "to": order.management_status, "carryover_round": order.carryover_round},
    )
    return order


@router.get("/{order_id}/history", response_model=List[StatusHistoryResponse])
async def get_status_history(
    order_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Status changes of an order, newest first."""
    workflow = StatusWorkflow(db)
    workflow.get_order(order_id)
    return workflow.get_history(order_id, limit)


@router.post("/{order_id}/notified", response_model=OrderStatusResponse)
async def mark_order_notified(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Record that the notification for the current status was sent."""
    return StatusWorkflow(db).mark_notified(order_id)


@router.get("/{site_code}/preferred-dates", response_model=PreferredDatesResponse)
async def get_preferred_dates(
    site_code: str,
    months: int = Query(3, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Preferred participation dates buyers picked, nearest first, for the manual order form."""
    dates = SyncService(db, None).list_preferred_dates(site_code, months)
    return PreferredDatesResponse(site_code=site_code, preferred_dates=dates)


@router.post("/{site_code}/realtime-check", response_model=RealtimeCheckResult)
async def realtime_check(
    site_code: str,
    request: RealtimeCheckRequest,
    db: Session = Depends(get_db),
    connector: BaseConnector = Depends(get_imweb_connector),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Re-check payment status of the listed orders against Imweb."""
    return await SyncService(db, connector).check_payment_status_realtime(site_code, request.order_ids)


@router.post("/{site_code}/manual", response_model=ManualOrderResult, status_code=201)
async def create_manual_order(
    site_code: str,
    request: ManualOrderRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Add an order that did not come through Imweb."""
    result = SyncService(db, None).create_manual_order(site_code, request)
    record_operator_action(
        db,
        http_request,
        action="manual_order_created",
        site_code=site_code,
        entity_type="sync_order",
        entity_id=result.order_id,
        actor=current_user.username if current_user else None,
        details={"order_no": result.order_no, "prod_no": request.prod_no},
    )
    return result


@router.delete("/{order_id}/manual")
async def delete_manual_order(
    order_id: int,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Delete an operator-entered order."""
    order_no = SyncService(db, None).delete_manual_order(order_id)
    record_operator_action(
        db,
        http_request,
        action="manual_order_deleted",
        entity_type="sync_order",
        entity_id=order_id,
        actor=current_user.username if current_user else None,
        details={"order_no": order_no},
    )
    return {"status": "deleted", "order_no": order_no}
