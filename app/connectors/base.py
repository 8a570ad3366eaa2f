from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

from app.schemas.imweb import (
    ImwebCategory,
    ImwebMember,
    ImwebOrder,
    ImwebOrderPage,
    ImwebProduct,
    ImwebTokenResponse,
)


class UpstreamError(ValueError):
    """Raised when the upstream API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """The access token was rejected (expired, revoked or replaced by a newer one)."""


class UpstreamUnavailableError(UpstreamError):
    """Network failure or server-side error; the request may succeed later."""


class BaseConnector(ABC):
    """Abstract Base Class for upstream order API connectors.

    Every call takes the access token explicitly: tokens are rotated by other
    actors at any time, so the caller decides which one to use per attempt.
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abstractmethod
    async def list_orders(
        self,
        access_token: str,
        unit_code: str,
        page: int,
        limit: int,
        start_wtime: str,
        end_wtime: str,
    ) -> ImwebOrderPage:
        """Fetches one page of orders created inside the window."""
        pass

    @abstractmethod
    async def get_order(self, access_token: str, unit_code: str, order_no: int) -> ImwebOrder:
        """Fetches a single order with payments and sections."""
        pass

    @abstractmethod
    async def get_product(self, access_token: str, unit_code: str, prod_no: int) -> ImwebProduct:
        """Fetches product detail."""
        pass

    @abstractmethod
    async def get_member(self, access_token: str, unit_code: str, member_uid: str) -> ImwebMember:
        """Fetches member detail."""
        pass

    @abstractmethod
    async def get_categories(self, access_token: str, unit_code: str) -> List[ImwebCategory]:
        """Fetches the shop category tree."""
        pass

    @abstractmethod
    async def refresh_token(self, refresh_token: str) -> ImwebTokenResponse:
        """Exchanges a refresh token for a new access token."""
        pass

    async def close(self) -> None:
        """Releases network resources."""
        pass
