from typing import Annotated, Optional
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.auth import get_current_active_operator
from app.connectors.imweb_connector import get_connector_factory
from app.database import get_db, get_session_factory
from app.schemas.auth import Operator
from app.schemas.sync import PaginatedSyncRuns, SyncResetResult, SyncRunResponse
from app.services.sync_service import SyncService
from app.utils.audit_logger import record_operator_action

log = logging.getLogger(__name__)
router = APIRouter()


def _sse(event) -> str:
    return f"event: progress\ndata: {event.model_dump_json()}\n\n"


@router.post("/{site_code}/run")
async def run_sync(
    site_code: str,
    http_request: Request,
    range_days: Optional[int] = Query(None, ge=1, le=365, description="Days to look back, default 3"),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    connector_factory=Depends(get_connector_factory),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Run a manual sync and stream its progress as server-sent events."""
    record_operator_action(
        db,
        http_request,
        action="sync_triggered",
        site_code=site_code,
        entity_type="sync_run",
        actor=current_user.username if current_user else None,
        details={"range_days": range_days, "trigger_type": "manual"},
    )
    log.info(f"Manual sync requested for site {site_code} (range_days={range_days})")

    async def event_stream():
        # The stream outlives the request-scoped session
        stream_db = session_factory()
        connector = connector_factory()
        try:
            sync_service = SyncService(stream_db, connector)
            async for event in sync_service.run_manual_sync(site_code, range_days):
                yield _sse(event)
        finally:
            await connector.close()
            stream_db.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{site_code}/runs", response_model=PaginatedSyncRuns)
async def list_sync_runs(
    site_code: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """List sync runs for a site, newest first."""
    runs, total = SyncService(db, None).list_runs(site_code, skip=skip, limit=limit)
    return PaginatedSyncRuns(data=[SyncRunResponse.model_validate(run) for run in runs], total=total)


@router.get("/{site_code}/status", response_model=SyncRunResponse)
async def get_sync_status(
    site_code: str,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Latest sync run for a site; stale running runs are failed first."""
    sync_service = SyncService(db, None)
    sync_service.find_running_run(site_code)
    run = sync_service.get_latest_run(site_code)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No sync run found")
    return run


@router.delete("/{site_code}/data", response_model=SyncResetResult)
async def reset_sync_data(
    site_code: str,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Delete all synced orders, categories, history and runs of a site."""
    result = SyncService(db, None).reset_all_sync_data(site_code)
    record_operator_action(
        db,
        http_request,
        action="sync_data_reset",
        site_code=site_code,
        actor=current_user.username if current_user else None,
        details=result.model_dump(exclude={"message"}),
    )
    return result
