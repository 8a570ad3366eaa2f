"""Maintenance of the stored Imweb tokens per site."""

from typing import Annotated
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.auth import get_current_active_operator
from app.database import get_db
from app.schemas.auth import Operator
from app.schemas.credential import CredentialDeleteResult, CredentialStatusResponse
from app.services.credential_coordinator import CredentialCoordinator
from app.utils.audit_logger import record_operator_action

log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{site_code}", response_model=CredentialStatusResponse)
async def get_credential_status(
    site_code: str,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Presence and expiry of both token slots. Token values are never returned."""
    credentials = CredentialCoordinator.create(db, None)
    interactive = credentials.interactive.get_token(site_code)
    batch = credentials.batch.get_token(site_code)
    return CredentialStatusResponse(
        site_code=site_code,
        interactive_present=interactive is not None,
        interactive_expired=credentials.interactive.is_token_expired(site_code),
        interactive_expires_at=interactive.expires_at if interactive else None,
        batch_present=batch is not None,
        batch_valid=credentials.batch.is_token_valid(site_code),
        batch_expires_at=batch.expires_at if batch else None,
    )


@router.delete("/{site_code}", response_model=CredentialDeleteResult)
async def delete_credentials(
    site_code: str,
    http_request: Request,
    db: Session = Depends(get_db),
    current_user: Annotated[Operator, Depends(get_current_active_operator)] = None,
):
    """Forget both token slots, e.g. after the app was disconnected in Imweb."""
    credentials = CredentialCoordinator.create(db, None)
    result = CredentialDeleteResult(
        site_code=site_code,
        interactive_deleted=credentials.interactive.delete(site_code),
        batch_deleted=credentials.batch.delete(site_code),
    )
    log.info(f"Credentials deleted for site {site_code}: {result}")
    record_operator_action(
        db,
        http_request,
        action="credentials_deleted",
        site_code=site_code,
        entity_type="credential",
        actor=current_user.username if current_user else None,
        details=result.model_dump(exclude={"site_code"}),
    )
    return result
