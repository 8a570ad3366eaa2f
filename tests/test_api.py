import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.connectors.imweb_connector import get_connector_factory
from app.constants.statuses import CONFIRMED, NEEDS_REVIEW, REFUND
from app.main import app
from app.models.audit_log import AuditLog
from app.models.credential import BatchOAuthToken, OAuthToken
from app.models.scheduler_state import SchedulerState
from app.models.sync_order import SyncOrder
from app.models.sync_run import SyncRun
from app.schemas.imweb import ImwebOrderPage, ImwebProduct
from app.services.sync_service import RUNNING
from app.utils.clock import format_api, utc_now

from conftest import SITE

API = "/api/v1"


@pytest.fixture
def order(db) -> SyncOrder:
    order = SyncOrder(site_code=SITE, order_no=2001, payment_status="PAYMENT_COMPLETE",
                      management_status=NEEDS_REVIEW, notification_sent=False, is_manual_order=False)
    db.add(order)
    db.commit()
    return order


@pytest.fixture
def fake_connector():
    connector = MagicMock()
    connector.get_categories = AsyncMock(return_value=[])
    connector.get_product = AsyncMock(return_value=ImwebProduct(prod_no=77))
    connector.list_orders = AsyncMock(return_value=ImwebOrderPage.model_validate({
        "list": [{
            "orderNo": 3001,
            "wtime": format_api(utc_now()),
            "payments": [{"paymentStatus": "PAYMENT_COMPLETE"}],
            "sections": [{"sectionItems": [{"productInfo": {"prodNo": 77}}]}],
        }],
        "totalCount": 1,
        "totalPage": 1,
    }))
    connector.close = AsyncMock()
    app.dependency_overrides[get_connector_factory] = lambda: (lambda: connector)
    yield connector
    app.dependency_overrides.pop(get_connector_factory, None)


def parse_events(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        lines = block.split("\n")
        assert lines[0] == "event: progress"
        events.append(json.loads(lines[1][len("data: "):]))
    return events


class TestOrderEndpoints:
    def test_invalid_transition_returns_reason(self, client: TestClient, auth_headers, order):
        response = client.post(f"{API}/orders/{order.id}/status", json={"status": REFUND}, headers=auth_headers)
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "INVALID_TRANSITION"
        assert REFUND in data["detail"]

    def test_status_change_and_history(self, client: TestClient, auth_headers, order, db):
        response = client.post(f"{API}/orders/{order.id}/status", json={"status": CONFIRMED}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["management_status"] == CONFIRMED

        history = client.get(f"{API}/orders/{order.id}/history", headers=auth_headers).json()
        assert len(history) == 1
        assert history[0]["previous_status"] == NEEDS_REVIEW
        assert history[0]["changed_by"] == "admin"

        audit = db.query(AuditLog).filter(AuditLog.action == "status_changed").one()
        assert audit.details["to"] == CONFIRMED

    def test_available_statuses(self, client: TestClient, auth_headers, order):
        data = client.get(f"{API}/orders/{order.id}/statuses", headers=auth_headers).json()
        assert data["current"] == NEEDS_REVIEW
        assert NEEDS_REVIEW not in data["available"]

    def test_unknown_order(self, client: TestClient, auth_headers):
        response = client.get(f"{API}/orders/999/statuses", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "ORDER_NOT_FOUND"

    def test_manual_order_lifecycle(self, client: TestClient, auth_headers, store):
        payload = {
            "name": "이수진", "gender": "여", "phone": "01098765432", "birth_year": "1992",
            "preferred_date": "5월 3일", "prod_no": 77,
        }
        created = client.post(f"{API}/orders/{SITE}/manual", json=payload, headers=auth_headers)
        assert created.status_code == 201
        order_id = created.json()["order_id"]
        assert created.json()["order_no"] == -1

        invalid = client.post(f"{API}/orders/{SITE}/manual", json={**payload, "phone": "123"}, headers=auth_headers)
        assert invalid.status_code == 400

        deleted = client.delete(f"{API}/orders/{order_id}/manual", headers=auth_headers)
        assert deleted.status_code == 200
        assert deleted.json()["order_no"] == -1


class TestSyncEndpoints:
    def test_manual_run_streams_events(self, client: TestClient, auth_headers, store, interactive_token, fake_connector, db):
        response = client.post(f"{API}/sync/{SITE}/run", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_events(response.text)
        assert events[0]["progress"] == 1
        assert events[-1]["status"] == "COMPLETED"
        assert events[-1]["result"]["new_records"] == 1
        fake_connector.close.assert_awaited_once()

        status = client.get(f"{API}/sync/{SITE}/status", headers=auth_headers)
        assert status.status_code == 200
        assert status.json()["status"] == "completed"

        runs = client.get(f"{API}/sync/{SITE}/runs", headers=auth_headers).json()
        assert runs["total"] == 1

    def test_status_without_runs(self, client: TestClient, auth_headers):
        assert client.get(f"{API}/sync/{SITE}/status", headers=auth_headers).status_code == 404

    def test_reset_refused_while_running(self, client: TestClient, auth_headers, db):
        db.add(SyncRun(site_code=SITE, sync_type='ORDERS', trigger_type='manual', status=RUNNING, start_time=utc_now()))
        db.commit()
        response = client.delete(f"{API}/sync/{SITE}/data", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "SYNC_IN_PROGRESS"

    def test_reset(self, client: TestClient, auth_headers, order):
        response = client.delete(f"{API}/sync/{SITE}/data", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["order_deleted"] == 1


class TestSchedulerEndpoints:
    def test_enable_without_token_is_rejected(self, client: TestClient, auth_headers):
        response = client.post(f"{API}/scheduler/{SITE}/toggle", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "BATCH_CREDENTIAL_MISSING"

    def test_toggle_and_update(self, client: TestClient, auth_headers, batch_token):
        assert client.get(f"{API}/scheduler/{SITE}", headers=auth_headers).json()["is_enabled"] is False

        toggled = client.post(f"{API}/scheduler/{SITE}/toggle", headers=auth_headers).json()
        assert toggled["is_enabled"] is True
        assert toggled["batch_token_valid"] is True

        updated = client.put(f"{API}/scheduler/{SITE}", json={"enabled": True, "interval_minutes": 120},
                             headers=auth_headers).json()
        assert updated["run_interval_minutes"] == 60

        logs = client.get(f"{API}/scheduler/{SITE}/logs", headers=auth_headers).json()
        assert logs["total"] >= 2
        assert logs["data"][-1]["message"].startswith("스케줄러 설정 변경")

        assert client.delete(f"{API}/scheduler/{SITE}/logs", headers=auth_headers).json()["status"] == "cleared"

    def test_interval_change_keeps_next_run(self, client: TestClient, auth_headers, batch_token, db):
        client.post(f"{API}/scheduler/{SITE}/toggle", headers=auth_headers)
        state = db.query(SchedulerState).filter(SchedulerState.site_code == SITE).one()
        next_run_at = state.next_run_at

        updated = client.put(f"{API}/scheduler/{SITE}", json={"enabled": True, "interval_minutes": 30},
                             headers=auth_headers).json()

        assert updated["run_interval_minutes"] == 30
        db.expire_all()
        state = db.query(SchedulerState).filter(SchedulerState.site_code == SITE).one()
        assert state.next_run_at == next_run_at


class TestPreferredDatesEndpoint:
    def test_lists_synced_dates(self, client: TestClient, auth_headers, db):
        db.add(SyncOrder(site_code=SITE, order_no=1, opt_preferred_date="1월 1일", management_status=NEEDS_REVIEW,
                         notification_sent=False, is_manual_order=False))
        db.commit()

        response = client.get(f"{API}/orders/{SITE}/preferred-dates?months=12", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"site_code": SITE, "preferred_dates": ["1월1일"]}


class TestCredentialEndpoints:
    def test_status_reports_both_slots(self, client: TestClient, auth_headers, interactive_token, batch_token):
        data = client.get(f"{API}/credentials/{SITE}", headers=auth_headers).json()
        assert data["interactive_present"] is True
        assert data["interactive_expired"] is False
        assert data["batch_valid"] is True
        assert "access_token" not in data

    def test_status_without_tokens(self, client: TestClient, auth_headers):
        data = client.get(f"{API}/credentials/{SITE}", headers=auth_headers).json()
        assert data["interactive_present"] is False
        assert data["interactive_expired"] is True
        assert data["batch_present"] is False

    def test_delete_forgets_both_slots(self, client: TestClient, auth_headers, interactive_token, batch_token, db):
        response = client.delete(f"{API}/credentials/{SITE}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"site_code": SITE, "interactive_deleted": True, "batch_deleted": 1}
        db.expire_all()
        assert db.query(OAuthToken).count() == 0
        assert db.query(BatchOAuthToken).count() == 0
        assert db.query(AuditLog).filter(AuditLog.action == "credentials_deleted").count() == 1
