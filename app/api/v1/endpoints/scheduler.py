"""Scheduler endpoints for the periodic incremental sync."""

from typing import Annotated
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.auth import get_current_active_operator
from app.database import get_db
from app.models.scheduler_state import SchedulerState
from app.schemas.auth import Operator
from app.schemas.scheduler import (
    SchedulerLogEntryResponse,
    SchedulerLogsResponse,
    SchedulerStatusResponse,
    SchedulerUpdate,
)
from app.services.credential_coordinator import CredentialCoordinator
from app.services.scheduler_log import SchedulerLogEntry, scheduler_log
from app.services.scheduler_service import SchedulerService
from app.utils.audit_logger import record_operator_action

log = logging.getLogger(__name__)
router = APIRouter()


def _scheduler_service(db: Session) -> SchedulerService:
    # Enabling only needs local token rows; no upstream client
    credentials = CredentialCoordinator.create(db, None)
    return SchedulerService(db, credentials.batch)


def _entry_response(entry: SchedulerLogEntry) -> SchedulerLogEntryResponse:
    return SchedulerLogEntryResponse(
        timestamp=entry.timestamp,
        level=entry.level.value,
        site_code=entry.site_code,
        message=entry.message,
        formatted=entry.format(),
    )


def _to_response(state: SchedulerState, service: SchedulerService) -> SchedulerStatusResponse:
    response = SchedulerStatusResponse.model_validate(state)
    response.batch_token_valid = service.batch_credentials.is_token_valid(state.site_code)
    return response


@router.get("/{site_code}", response_model=SchedulerStatusResponse)
async def get_scheduler(
    site_code: str,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Current scheduler configuration and last outcome for a site."""
    service = _scheduler_service(db)
    return _to_response(service.get_status(site_code), service)


@router.post("/{site_code}/toggle", response_model=SchedulerStatusResponse)
async def toggle_scheduler(
    site_code: str,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Flip the scheduler on or off."""
    service = _scheduler_service(db)
    state = service.toggle(site_code)
    scheduler_log.info(f"스케줄러 {'활성화' if state.is_enabled else '비활성화'}", site_code)
    record_operator_action(
        db,
        http_request,
        action="scheduler_toggled",
        site_code=site_code,
        entity_type="scheduler",
        entity_id=state.id,
        actor=current_user.username if current_user else None,
        details={"enabled": state.is_enabled},
    )
    return _to_response(state, service)


@router.put("/{site_code}", response_model=SchedulerStatusResponse)
async def update_scheduler(
    site_code: str,
    update: SchedulerUpdate,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Set enabled flag and interval."""
    service = _scheduler_service(db)
    current = service.get_state(site_code)
    if current is not None and current.is_enabled == update.enabled and update.interval_minutes is not None:
        # Interval-only change keeps the pending next run
        state = service.update_interval(site_code, update.interval_minutes)
    else:
        state = service.set_enabled(site_code, update.enabled, update.interval_minutes)
    scheduler_log.info(
        f"스케줄러 설정 변경: {'ON' if state.is_enabled else 'OFF'}, {state.run_interval_minutes}분 간격", site_code
    )
    record_operator_action(
        db,
        http_request,
        action="scheduler_updated",
        site_code=site_code,
        entity_type="scheduler",
        entity_id=state.id,
        actor=current_user.username if current_user else None,
        details={"enabled": state.is_enabled, "interval_minutes": state.run_interval_minutes},
    )
    return _to_response(state, service)


@router.get("/{site_code}/logs", response_model=SchedulerLogsResponse)
async def get_scheduler_logs(
    site_code: str,
    limit: int = Query(50, ge=1, le=100),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Recent scheduler activity for a site, oldest first."""
    entries = scheduler_log.get_logs_by_site_code(site_code, limit)
    data = [_entry_response(entry) for entry in entries]
    return SchedulerLogsResponse(data=data, total=len(data))


@router.get("/{site_code}/logs/stream")
async def stream_scheduler_logs(
    site_code: str,
    request: Request,
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Follow the activity feed for a site as server-sent events."""

    async def event_stream():
        async for entry in scheduler_log.follow(site_code, request.is_disconnected):
            if entry is None:
                yield ": keepalive\n\n"
            else:
                yield f"event: log\ndata: {_entry_response(entry).model_dump_json()}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.delete("/{site_code}/logs")
async def clear_scheduler_logs(
    site_code: str,
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Clear the in-memory activity feed."""
    scheduler_log.clear()
    log.info(f"Scheduler activity feed cleared by {current_user.username if current_user else 'unknown'}")
    return {"status": "cleared"}
