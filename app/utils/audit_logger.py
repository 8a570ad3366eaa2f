"""Audit trail of operator actions."""

import logging
from typing import Optional, Dict, Any
from fastapi import Request
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

log = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Client IP behind a reverse proxy.

    X-Forwarded-For (first entry) wins over X-Real-IP, which wins over the
    socket peer address.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def record_operator_action(
    db: Session,
    request: Request,
    action: str,
    site_code: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    actor: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Store one audit entry, e.g. ``sync_triggered``, ``status_changed``,
    ``sync_data_reset``, ``scheduler_toggled``, ``manual_order_created``.
    """
    entry = AuditLog(
        action=action,
        site_code=site_code,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    log.debug(f"Audit: {action} site={site_code} {entity_type}={entity_id} by {actor}")
    return entry
