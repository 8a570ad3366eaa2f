import httpx
from fastapi import Depends
import logging
from typing import Dict, Any, List, Optional
from urllib.parse import quote

from app.connectors.base import (
    BaseConnector,
    UpstreamAuthError,
    UpstreamError,
    UpstreamUnavailableError,
)
from app.config import settings
from app.schemas.imweb import (
    ImwebCategory,
    ImwebMember,
    ImwebOrder,
    ImwebOrderPage,
    ImwebProduct,
    ImwebTokenResponse,
)

log = logging.getLogger(__name__)


class ImwebConnector(BaseConnector):
    """
    Connector for the Imweb open API.

    Every response is wrapped as {"statusCode": ..., "data": ...}; `_request`
    unwraps `data` and maps HTTP failures to UpstreamError subclasses so the
    sync engine can tell authentication failures (retry with a re-read token)
    from unavailability.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[httpx.AsyncClient] = None):
        config = config or {}
        super().__init__(config)
        self.base_url = str(config.get("base_url") or settings.imweb_api_base_url).rstrip("/")
        self.client_id = config.get("client_id", settings.imweb_client_id)
        self.client_secret = config.get("client_secret", settings.imweb_client_secret)
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            follow_redirects=True,
            timeout=config.get("timeout", settings.imweb_timeout_seconds),
        )
        log.debug(f"Imweb connector initialized with base URL: {self.base_url}")

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        **kwargs,
    ) -> Any:
        """
        Helper to make requests to the Imweb API.
        Returns the unwrapped `data` member of the response body.
        """
        if not path.startswith("/"):
            path = f"/{path}"

        headers = kwargs.pop("headers", {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            log.trace(f"Imweb API {method} {self.base_url}{path} params={kwargs.get('params')}")
            response = await self.client.request(method, path, headers=headers, **kwargs)
            log.trace(f"Imweb API response: {response.status_code} {response.text[:500]}")
            response.raise_for_status()
            body = response.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            url = str(e.request.url)
            response_text = e.response.text[:500]

            if status == 401:
                error_msg = f"Imweb authentication failed (401 Unauthorized) for {url}: {response_text}"
                log.warning(error_msg)
                raise UpstreamAuthError(error_msg, status_code=status)

            elif status == 403:
                error_msg = f"Imweb permission denied (403) for {url}: token scope is insufficient"
                log.error(error_msg)
                raise UpstreamAuthError(error_msg, status_code=status)

            elif status == 404:
                error_msg = f"Imweb resource not found: {url}"
                log.warning(error_msg)
                raise UpstreamError(error_msg, status_code=status)

            elif status == 429 or status >= 500:
                error_msg = f"Imweb API unavailable (HTTP {status}) for {url}: {response_text}"
                log.error(error_msg)
                raise UpstreamUnavailableError(error_msg, status_code=status)

            else:
                error_msg = f"Imweb HTTP {status} error for {url}: {response_text}"
                log.error(error_msg)
                raise UpstreamError(error_msg, status_code=status)

        except httpx.RequestError as e:
            error_msg = f"Imweb request error for {e.request.url}: {str(e)}"
            log.error(error_msg)
            raise UpstreamUnavailableError(error_msg)

        except ValueError as e:
            error_msg = f"Imweb returned a non-JSON body for {path}: {e}"
            log.error(error_msg)
            raise UpstreamError(error_msg)

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def list_orders(
        self,
        access_token: str,
        unit_code: str,
        page: int,
        limit: int,
        start_wtime: str,
        end_wtime: str,
        **filters: Optional[str],
    ) -> ImwebOrderPage:
        params = {
            "page": page,
            "limit": limit,
            "unitCode": unit_code,
            "startWtime": start_wtime,
            "endWtime": end_wtime,
        }
        # Optional filters: orderSectionStatus, paymentStatus, paymentMethod, country, ...
        params.update({key: value for key, value in filters.items() if value})

        data = await self._request("GET", "/orders", access_token=access_token, params=params)
        order_page = ImwebOrderPage.model_validate(data or {})
        log.debug(
            f"Received {len(order_page.orders)} orders from Imweb "
            f"(page {page}/{order_page.total_page}, total {order_page.total_count})"
        )
        return order_page

    async def get_order(self, access_token: str, unit_code: str, order_no: int) -> ImwebOrder:
        data = await self._request(
            "GET", f"/orders/{order_no}", access_token=access_token, params={"unitCode": unit_code}
        )
        return ImwebOrder.model_validate(data or {})

    async def get_product(self, access_token: str, unit_code: str, prod_no: int) -> ImwebProduct:
        data = await self._request(
            "GET", f"/products/{prod_no}", access_token=access_token, params={"unitCode": unit_code}
        )
        return ImwebProduct.model_validate(data or {})

    async def get_member(self, access_token: str, unit_code: str, member_uid: str) -> ImwebMember:
        # Member uids are frequently e-mail addresses
        encoded_uid = quote(member_uid, safe="")
        data = await self._request(
            "GET", f"/member-info/members/{encoded_uid}", access_token=access_token, params={"unitCode": unit_code}
        )
        return ImwebMember.model_validate(data or {})

    async def get_categories(self, access_token: str, unit_code: str) -> List[ImwebCategory]:
        data = await self._request(
            "GET", "/products/shop-categories", access_token=access_token, params={"unitCode": unit_code}
        )
        return [ImwebCategory.model_validate(item) for item in (data or [])]

    async def refresh_token(self, refresh_token: str) -> ImwebTokenResponse:
        form = {
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "refreshToken": refresh_token,
            "grantType": "refresh_token",
        }
        data = await self._request("POST", "/oauth2/token", data=form)
        log.info("Imweb token refreshed")
        return ImwebTokenResponse.model_validate(data)

    async def close(self) -> None:
        await self.client.aclose()


def get_connector_factory():
    """Connector class the API layer instantiates."""
    return ImwebConnector


async def get_imweb_connector(factory=Depends(get_connector_factory)):
    """FastAPI dependency yielding a connector that is always closed."""
    connector = factory()
    try:
        yield connector
    finally:
        await connector.close()
