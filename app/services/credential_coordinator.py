"""Upstream credential handling.

Imweb keeps exactly one valid access token per site. Issuing a token from any
slot (the operator's interactive login or the scheduler's batch slot)
silently invalidates every token issued before it, and nothing coordinates
the two actors. Instead of locking, every upstream call is treated as possibly
holding a stale token:

* TokenRetryHelper retries a failed call a bounded number of times and
  re-reads the token from the database before each retry, picking up a token
  written by a concurrent refresh.
* BatchCredentialService keeps the scheduler's slot usable without an
  operator: it adopts the interactive token first and only then spends a
  refresh-token exchange.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Type, TypeVar, Union

from sqlalchemy.orm import Session

from app.config import settings
from app.connectors.base import BaseConnector, UpstreamAuthError
from app.constants.sync_reasons import ReasonCode
from app.exceptions import CredentialUnavailableError
from app.models.credential import BatchOAuthToken, OAuthToken
from app.schemas.imweb import ImwebTokenResponse
from app.utils.clock import as_utc, utc_now
from app.utils.encrypt import decrypt_token, encrypt_token

log = logging.getLogger(__name__)

T = TypeVar("T")
TokenModel = Union[OAuthToken, BatchOAuthToken]

TOKEN_ERROR_MARKERS = ("401", "unauthorized", "token")


def _load_token(db: Session, model: Type[TokenModel], site_code: str) -> Optional[TokenModel]:
    # populate_existing re-reads the row even if the session already holds it
    return (
        db.query(model)
        .filter(model.site_code == site_code)
        .populate_existing()
        .first()
    )


def _scopes_to_str(scope) -> Optional[str]:
    if scope is None:
        return None
    if isinstance(scope, str):
        return scope
    return " ".join(scope)


def _is_expired(expires_at: Optional[datetime], margin: timedelta = timedelta(0), now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    return as_utc(expires_at) - margin <= (now or utc_now())


class CredentialService:
    """Interactive slot (``oauth_tokens``), written by the OAuth login flow."""

    def __init__(self, db: Session, connector: Optional[BaseConnector] = None):
        self.db = db
        self.connector = connector

    def get_token(self, site_code: str) -> Optional[OAuthToken]:
        return _load_token(self.db, OAuthToken, site_code)

    def get_current_access_token(self, site_code: str) -> Optional[str]:
        """Current access token straight from the database, expired or not."""
        token = self.get_token(site_code)
        return decrypt_token(token.access_token) if token else None

    def is_token_expired(self, site_code: str, now: Optional[datetime] = None) -> bool:
        token = self.get_token(site_code)
        if token is None:
            return True
        return _is_expired(token.expires_at, now=now)

    def save_token_response(
        self,
        site_code: str,
        response: ImwebTokenResponse,
        now: Optional[datetime] = None,
    ) -> OAuthToken:
        """Store a token issued to the interactive slot."""
        now = now or utc_now()
        token = self.get_token(site_code)
        if token is None:
            token = OAuthToken(site_code=site_code)
            self.db.add(token)

        lifetime = response.expires_in or settings.access_token_lifetime_seconds
        token.access_token = encrypt_token(response.access_token)
        if response.refresh_token:
            token.refresh_token = encrypt_token(response.refresh_token)
            token.refresh_token_expires_at = now + timedelta(days=settings.refresh_token_lifetime_days)
        token.token_type = response.token_type or "Bearer"
        token.scopes = _scopes_to_str(response.scope) or token.scopes
        token.expires_at = now + timedelta(seconds=lifetime)
        token.issued_at = now
        self.db.commit()
        self.db.refresh(token)
        log.info(f"Stored interactive token for site {site_code} (expires {token.expires_at})")
        return token

    async def refresh(self, site_code: str) -> Optional[str]:
        """Refresh the interactive slot. Returns the new access token or None."""
        token = self.get_token(site_code)
        if token is None or not token.refresh_token or self.connector is None:
            log.warning(f"No refresh token available for interactive slot of site {site_code}")
            return None
        if _is_expired(token.refresh_token_expires_at):
            log.warning(f"Interactive refresh token expired for site {site_code}")
            return None
        try:
            response = await self.connector.refresh_token(decrypt_token(token.refresh_token))
        except Exception as e:
            log.error(f"Failed to refresh interactive token for site {site_code}: {e}")
            return None
        if not response.refresh_token:
            response = response.model_copy(update={"refresh_token": decrypt_token(token.refresh_token)})
        self.save_token_response(site_code, response)
        return response.access_token

    async def get_valid_access_token(self, site_code: str, allow_refresh: bool = True) -> Optional[str]:
        token = self.get_token(site_code)
        if token is None:
            return None
        if not _is_expired(token.expires_at):
            return decrypt_token(token.access_token)
        if not allow_refresh:
            return None
        log.info(f"Interactive token expired for site {site_code}, refreshing")
        return await self.refresh(site_code)

    def delete(self, site_code: str) -> bool:
        deleted = self.db.query(OAuthToken).filter(OAuthToken.site_code == site_code).delete()
        self.db.commit()
        return deleted > 0


class BatchCredentialService:
    """Scheduler slot (``oauth_tokens_batch``) with the automatic fallback chain."""

    def __init__(self, db: Session, connector: Optional[BaseConnector], interactive: CredentialService):
        self.db = db
        self.connector = connector
        self.interactive = interactive
        self.refresh_margin = timedelta(minutes=settings.token_refresh_margin_minutes)

    def get_token(self, site_code: str) -> Optional[BatchOAuthToken]:
        return _load_token(self.db, BatchOAuthToken, site_code)

    def get_current_access_token(self, site_code: str) -> Optional[str]:
        token = self.get_token(site_code)
        return decrypt_token(token.access_token) if token else None

    def is_token_valid(self, site_code: str, now: Optional[datetime] = None) -> bool:
        token = self.get_token(site_code)
        if token is None or token.expires_at is None:
            return False
        return not _is_expired(token.expires_at, now=now)

    def force_copy_from_interactive(self, site_code: str) -> Optional[str]:
        """Adopt the interactive slot's token. Returns the adopted access token or None."""
        source = self.interactive.get_token(site_code)
        if source is None:
            log.warning(f"No interactive token to adopt for site {site_code}")
            return None

        target = self.get_token(site_code)
        if target is None:
            target = BatchOAuthToken(site_code=site_code)
            self.db.add(target)

        # Values stay encrypted with the same key
        target.access_token = source.access_token
        target.refresh_token = source.refresh_token
        target.token_type = source.token_type
        target.scopes = source.scopes
        target.expires_at = source.expires_at
        target.refresh_token_expires_at = source.refresh_token_expires_at
        target.issued_at = source.issued_at
        self.db.commit()
        log.info(f"Copied interactive token to batch slot for site {site_code}")
        return decrypt_token(source.access_token)

    async def force_refresh(self, site_code: str) -> Optional[str]:
        """Refresh-token exchange for the batch slot. Returns the new access token or None."""
        token = self.get_token(site_code)
        if token is None:
            log.warning(f"No batch token to refresh for site {site_code}")
            return None
        refresh_token = decrypt_token(token.refresh_token)
        if not refresh_token or not refresh_token.strip():
            log.warning(f"No refresh token available for batch slot of site {site_code}")
            return None
        if _is_expired(token.refresh_token_expires_at):
            log.warning(f"Batch refresh token expired for site {site_code}")
            return None
        if self.connector is None:
            return None

        try:
            response = await self.connector.refresh_token(refresh_token)
        except Exception as e:
            log.error(f"Failed to refresh batch token for site {site_code}: {e}")
            return None

        now = utc_now()
        token = self.get_token(site_code)
        token.access_token = encrypt_token(response.access_token)
        token.refresh_token = encrypt_token(response.refresh_token or refresh_token)
        token.token_type = response.token_type or "Bearer"
        token.scopes = _scopes_to_str(response.scope) or token.scopes
        token.expires_at = now + timedelta(seconds=settings.batch_access_token_lifetime_seconds)
        token.refresh_token_expires_at = now + timedelta(days=settings.refresh_token_lifetime_days)
        token.issued_at = now
        self.db.commit()
        log.info(f"Batch token refreshed for site {site_code}")
        return response.access_token

    def _interactive_token_usable(self, site_code: str) -> bool:
        source = self.interactive.get_token(site_code)
        return source is not None and not _is_expired(source.expires_at, self.refresh_margin)

    async def get_valid_access_token(self, site_code: str) -> Optional[str]:
        """Token for a scheduled run, or None when no automatic path works.

        Missing slot: adopt the interactive token. Expiring slot: adopt the
        interactive token if it is still fresh, otherwise refresh.
        """
        token = self.get_token(site_code)
        if token is None:
            log.info(f"No batch token for site {site_code}, adopting the interactive token")
            return self.force_copy_from_interactive(site_code)

        if not _is_expired(token.expires_at, self.refresh_margin):
            return decrypt_token(token.access_token)

        log.info(f"Batch token for site {site_code} expired or expiring within {self.refresh_margin}")
        if self._interactive_token_usable(site_code):
            adopted = self.force_copy_from_interactive(site_code)
            if adopted:
                return adopted

        refreshed = await self.force_refresh(site_code)
        if refreshed:
            return refreshed

        log.error(f"Failed to get a valid batch token for site {site_code}")
        return None

    def has_obtainable_token(self, site_code: str) -> bool:
        """Whether scheduling can be enabled: a valid batch token or one to adopt."""
        if self.is_token_valid(site_code):
            return True
        return self.force_copy_from_interactive(site_code) is not None

    def delete(self, site_code: str) -> int:
        deleted = self.db.query(BatchOAuthToken).filter(BatchOAuthToken.site_code == site_code).delete()
        self.db.commit()
        return deleted


def is_token_error(exc: BaseException) -> bool:
    if isinstance(exc, UpstreamAuthError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TOKEN_ERROR_MARKERS)


class TokenRetryHelper:
    """Runs an upstream call with a token re-read from storage before every retry."""

    def __init__(
        self,
        token_reader: Callable[[str], Optional[str]],
        max_attempts: Optional[int] = None,
        delay_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.token_reader = token_reader
        self.max_attempts = max_attempts or settings.token_retry_max_attempts
        self.delay = (delay_ms if delay_ms is not None else settings.token_retry_delay_ms) / 1000
        self.sleep = sleep

    def _read_token(self, site_code: str) -> str:
        token = self.token_reader(site_code)
        if not token:
            raise CredentialUnavailableError(ReasonCode.CREDENTIAL_MISSING, {"site_code": site_code})
        return token

    async def execute(
        self,
        site_code: str,
        operation: Callable[[str], Awaitable[T]],
        description: str = "Imweb API call",
    ) -> T:
        """Run ``operation(access_token)`` up to ``max_attempts`` times; raise the last error."""
        token = self._read_token(site_code)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                log.debug(f"[Retry] {description} attempt {attempt}/{self.max_attempts} for site {site_code}")
                return await operation(token)
            except Exception as e:
                last_error = e
                if attempt == self.max_attempts:
                    log.error(
                        f"[Retry] {description} failed after {self.max_attempts} attempts for site {site_code}: "
                        f"{str(e)[:200]}"
                    )
                    break

                kind = "Token error" if is_token_error(e) else "API error"
                log.warning(
                    f"[Retry] {kind} on attempt {attempt}/{self.max_attempts} for site {site_code}, "
                    f"retrying in {int(self.delay * 1000)}ms: {str(e)[:100]}"
                )
                await self.sleep(self.delay)
                # A concurrent refresh may already have stored a newer token
                token = self._read_token(site_code)

        raise last_error

    async def execute_or_none(
        self,
        site_code: str,
        operation: Callable[[str], Awaitable[T]],
    ) -> Optional[T]:
        """Single attempt; returns None on any failure."""
        token = self.token_reader(site_code)
        if not token:
            return None
        try:
            return await operation(token)
        except Exception as e:
            log.debug(f"Imweb API call failed for site {site_code}: {e}")
            return None


@dataclass
class CredentialCoordinator:
    """Bundles both credential slots and their retry helpers for one session."""

    interactive: CredentialService
    batch: BatchCredentialService

    @classmethod
    def create(cls, db: Session, connector: Optional[BaseConnector]) -> "CredentialCoordinator":
        interactive = CredentialService(db, connector)
        return cls(interactive=interactive, batch=BatchCredentialService(db, connector, interactive))

    def interactive_retry(self, **kwargs) -> TokenRetryHelper:
        return TokenRetryHelper(self.interactive.get_current_access_token, **kwargs)

    def batch_retry(self, **kwargs) -> TokenRetryHelper:
        return TokenRetryHelper(self.batch.get_current_access_token, **kwargs)
