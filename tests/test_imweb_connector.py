import httpx
import pytest

from app.connectors.base import UpstreamAuthError, UpstreamError, UpstreamUnavailableError
from app.connectors.imweb_connector import ImwebConnector


def make_connector(handler) -> ImwebConnector:
    client = httpx.AsyncClient(base_url="https://api.test", transport=httpx.MockTransport(handler))
    return ImwebConnector({"base_url": "https://api.test", "client_id": "cid", "client_secret": "secret"}, client=client)


@pytest.mark.asyncio
class TestImwebConnector:
    async def test_list_orders_unwraps_data(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "statusCode": 200,
                "data": {
                    "totalCount": 2,
                    "totalPage": 1,
                    "currentPage": 1,
                    "list": [{"orderNo": 1, "wtime": "2025-04-24T00:00:00.000Z"}, {"orderNo": 2}],
                },
            })

        connector = make_connector(handler)
        page = await connector.list_orders("tok", "u1", page=1, limit=50,
                                           start_wtime="2025-04-23T00:00:00Z", end_wtime="2025-04-24T00:00:00Z")
        await connector.close()

        assert seen["auth"] == "Bearer tok"
        assert seen["params"]["unitCode"] == "u1"
        assert seen["params"]["startWtime"] == "2025-04-23T00:00:00Z"
        assert page.total_count == 2
        assert [order.order_no for order in page.orders] == [1, 2]

    async def test_unauthorized_maps_to_auth_error(self):
        connector = make_connector(lambda request: httpx.Response(401, json={"message": "expired"}))
        with pytest.raises(UpstreamAuthError) as exc_info:
            await connector.get_order("tok", "u1", 1)
        assert exc_info.value.status_code == 401
        await connector.close()

    async def test_server_error_maps_to_unavailable(self):
        connector = make_connector(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(UpstreamUnavailableError):
            await connector.get_product("tok", "u1", 77)
        await connector.close()

    async def test_not_found(self):
        connector = make_connector(lambda request: httpx.Response(404, json={}))
        with pytest.raises(UpstreamError) as exc_info:
            await connector.get_product("tok", "u1", 77)
        assert not isinstance(exc_info.value, UpstreamAuthError)
        await connector.close()

    async def test_network_failure_maps_to_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        connector = make_connector(handler)
        with pytest.raises(UpstreamUnavailableError):
            await connector.get_categories("tok", "u1")
        await connector.close()

    async def test_member_uid_is_path_encoded(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.raw_path.decode()
            return httpx.Response(200, json={"data": {"memberUid": "a@b.com", "gender": "F"}})

        connector = make_connector(handler)
        member = await connector.get_member("tok", "u1", "a@b.com")
        await connector.close()

        assert seen["path"].startswith("/member-info/members/a%40b.com")
        assert member.gender == "F"

    async def test_refresh_token_posts_form(self):
        seen = {}

        def handler(request):
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"data": {"accessToken": "new", "refreshToken": "r2", "expiresIn": 7200}})

        connector = make_connector(handler)
        response = await connector.refresh_token("r1")
        await connector.close()

        assert "grantType=refresh_token" in seen["body"]
        assert "refreshToken=r1" in seen["body"]
        assert response.access_token == "new"
        assert response.expires_in == 7200
