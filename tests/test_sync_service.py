from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.connectors.base import UpstreamAuthError, UpstreamUnavailableError
from app.constants.statuses import AWAITING_PAYMENT, CONFIRMED, NEEDS_REVIEW, REFUND
from app.constants.sync_reasons import ReasonCode
from app.exceptions import CredentialUnavailableError, ManualOrderError, OrderNotFoundError, SyncError, SyncInProgressError
from app.models.category import SyncCategory, SyncOrderCategory
from app.models.status_history import SyncOrderStatusHistory
from app.models.sync_order import SyncOrder
from app.models.sync_run import SyncRun
from app.schemas.imweb import ImwebCategory, ImwebOrder, ImwebOrderPage, ImwebProduct, ImwebTokenResponse
from app.schemas.sync import ManualOrderRequest
from app.services.sync_service import COMPLETED, FAILED, RUNNING, RunCounts, SyncService
from app.utils.clock import format_api, utc_now

from conftest import SITE, no_sleep


def order_payload(order_no, payment_status="PAYMENT_COMPLETE", prod_no=77, hours_ago=1):
    return {
        "orderNo": order_no,
        "isMember": "N",
        "totalPrice": 30000,
        "wtime": format_api(utc_now() - timedelta(hours=hours_ago)),
        "payments": [{"paymentNo": f"P{order_no}", "paymentStatus": payment_status, "paidPrice": 30000}],
        "sections": [
            {
                "orderSectionStatus": "WAITING",
                "sectionItems": [
                    {"qty": 1, "productInfo": {"prodNo": prod_no, "prodName": "모임", "optionInfo": {"성별": "남"}}}
                ],
            }
        ],
    }


def make_page(*orders, total_page=1):
    return ImwebOrderPage.model_validate(
        {"list": list(orders), "totalCount": len(orders), "totalPage": total_page, "currentPage": 1}
    )


@pytest.fixture
def connector():
    connector = MagicMock()
    connector.list_orders = AsyncMock(return_value=make_page(order_payload(1001), order_payload(1002)))
    connector.get_product = AsyncMock(return_value=ImwebProduct(prod_no=77, prod_code="P77", categories=["c1"]))
    connector.get_member = AsyncMock()
    connector.get_categories = AsyncMock(return_value=[
        ImwebCategory(category_code="c1", name="모임", children=[ImwebCategory(category_code="c2", name="토요일")])
    ])
    connector.get_order = AsyncMock()
    connector.refresh_token = AsyncMock()
    return connector


@pytest.fixture
def service(db, connector, activity):
    return SyncService(db, connector, activity=activity, sleep=no_sleep)


def start_run(db, site_code=SITE, minutes_ago=0, trigger_type='manual'):
    run = SyncRun(site_code=site_code, sync_type='ORDERS', trigger_type=trigger_type, status=RUNNING,
                  start_time=utc_now() - timedelta(minutes=minutes_ago))
    db.add(run)
    db.commit()
    return run


async def collect(agen):
    return [event async for event in agen]


class TestRunRecords:
    def test_running_run_blocks_same_site_only(self, db, service):
        start_run(db)
        assert service.is_running(SITE)
        assert not service.is_running("other-site")
        with pytest.raises(SyncInProgressError):
            service.ensure_not_running(SITE)

    def test_stale_run_is_failed(self, db, service):
        run = start_run(db, minutes_ago=10)
        assert service.find_running_run(SITE) is None
        db.refresh(run)
        assert run.status == FAILED
        assert run.end_time is not None
        assert "5분" in run.error_message

    def test_long_run_with_recent_progress_is_kept(self, db, service):
        run = start_run(db, minutes_ago=6)
        service._save_progress(run, RunCounts(fetched=5000, synced=4000))

        assert service.find_running_run(SITE).id == run.id
        db.refresh(run)
        assert run.status == RUNNING
        assert run.end_time is None

    def test_run_without_progress_since_threshold_is_failed(self, db, service):
        run = start_run(db, minutes_ago=30)
        run.last_progress_at = utc_now() - timedelta(minutes=6)
        db.commit()

        assert service.find_running_run(SITE) is None
        db.refresh(run)
        assert run.status == FAILED

    def test_list_runs_newest_first(self, db, service):
        older = start_run(db, minutes_ago=30)
        newer = start_run(db, minutes_ago=20)
        runs, total = service.list_runs(SITE, skip=0, limit=1)
        assert total == 2
        assert [run.id for run in runs] == [newer.id]
        assert service.get_latest_run(SITE).id == newer.id
        assert older.id != newer.id

    def test_store_checks(self, db, service):
        with pytest.raises(SyncError) as exc_info:
            service.get_store("missing")
        assert exc_info.value.code == ReasonCode.STORE_MISSING


class TestManualSync:
    @pytest.mark.asyncio
    async def test_streams_progress_and_stores_orders(self, db, service, store, interactive_token, connector):
        events = await collect(service.run_manual_sync(SITE))

        assert [e.progress for e in events[:3]] == [1, 5, 10]
        assert events[-2].progress == 95
        final = events[-1]
        assert final.status == 'COMPLETED'
        assert final.progress == 100
        assert final.result.new_records == 2
        assert final.result.failed_records == 0

        assert db.query(SyncOrder).filter(SyncOrder.site_code == SITE).count() == 2
        assert db.query(SyncCategory).count() == 2
        assert db.query(SyncOrderCategory).count() == 2
        order = db.query(SyncOrder).filter(SyncOrder.order_no == 1001).one()
        assert order.management_status == NEEDS_REVIEW
        assert order.prod_code == "P77"
        assert order.opt_gender == "남"

        run = service.get_latest_run(SITE)
        assert run.status == COMPLETED
        assert run.trigger_type == 'manual'
        assert run.entries_new == 2
        assert run.entries_fetched == 2
        assert run.last_progress_at is not None

        # Product detail is fetched once per run
        assert connector.get_product.await_count == 1
        _, kwargs = connector.list_orders.await_args
        assert kwargs["start_wtime"].endswith("Z")

    @pytest.mark.asyncio
    async def test_second_run_updates_in_place(self, db, service, store, interactive_token):
        await collect(service.run_manual_sync(SITE))
        order = db.query(SyncOrder).filter(SyncOrder.order_no == 1001).one()
        order.management_status = CONFIRMED
        db.commit()

        events = await collect(service.run_manual_sync(SITE))

        assert events[-1].result.updated_records == 2
        assert events[-1].result.new_records == 0
        db.refresh(order)
        assert order.management_status == CONFIRMED
        assert db.query(SyncOrder).count() == 2

    @pytest.mark.asyncio
    async def test_rejected_while_running(self, db, service, store, interactive_token, connector):
        start_run(db)
        events = await collect(service.run_manual_sync(SITE))
        assert len(events) == 1
        assert events[0].status == 'FAILED'
        assert events[0].message == "이미 동기화가 진행 중입니다."
        connector.list_orders.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_while_scheduled_run_is_active(self, db, service, store, interactive_token, connector):
        start_run(db, trigger_type='scheduled')
        events = await collect(service.run_manual_sync(SITE))
        assert [e.status for e in events] == ['FAILED']
        assert events[0].message == "이미 동기화가 진행 중입니다."
        connector.list_orders.assert_not_awaited()
        assert db.query(SyncRun).count() == 1

    @pytest.mark.asyncio
    async def test_other_site_may_run_concurrently(self, db, service, store, interactive_token):
        start_run(db, site_code="other-site")
        events = await collect(service.run_manual_sync(SITE))
        assert events[-1].status == 'COMPLETED'

    @pytest.mark.asyncio
    async def test_missing_credential(self, db, service, store):
        events = await collect(service.run_manual_sync(SITE))
        assert events[-1].status == 'FAILED'
        assert db.query(SyncRun).count() == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_fails_run(self, db, service, store, interactive_token, connector):
        connector.list_orders.side_effect = UpstreamAuthError("401 Unauthorized")
        events = await collect(service.run_manual_sync(SITE))

        assert events[-1].status == 'FAILED'
        assert events[-1].message.startswith("동기화 실패")
        # Initial attempt plus retries with a re-read token
        assert connector.list_orders.await_count == 3
        assert service.get_latest_run(SITE).status == FAILED

    @pytest.mark.asyncio
    async def test_unavailable_upstream_uses_reason_message(self, db, service, store, interactive_token, connector):
        connector.list_orders.side_effect = UpstreamUnavailableError("Imweb API unavailable (HTTP 503)", 503)
        events = await collect(service.run_manual_sync(SITE))

        assert events[-1].status == 'FAILED'
        assert events[-1].message == "동기화 실패: 아임웹 API를 사용할 수 없습니다: Imweb API unavailable (HTTP 503)"
        run = service.get_latest_run(SITE)
        assert run.error_message.startswith("아임웹 API를 사용할 수 없습니다")

    @pytest.mark.asyncio
    async def test_one_bad_order_does_not_fail_run(self, db, service, store, interactive_token, connector):
        original_upsert = service.merger.upsert
        failures = iter([RuntimeError("constraint")])

        def flaky_upsert(*args, **kwargs):
            error = next(failures, None)
            if error is not None:
                raise error
            return original_upsert(*args, **kwargs)

        service.merger.upsert = flaky_upsert

        events = await collect(service.run_manual_sync(SITE))

        assert events[-1].status == 'COMPLETED'
        assert events[-1].result.failed_records == 1
        assert events[-1].result.new_records == 1
        assert db.query(SyncOrder).one().order_no == 1002

    @pytest.mark.asyncio
    async def test_sync_target_filter(self, db, store, interactive_token, connector, activity):
        service = SyncService(db, connector, activity=activity, sleep=no_sleep,
                              is_sync_target=lambda site, prod_no: prod_no == 99)
        events = await collect(service.run_manual_sync(SITE))
        assert events[-1].result.total_records == 0
        assert db.query(SyncOrder).count() == 0

    @pytest.mark.asyncio
    async def test_filtered_orders_still_end_with_final_progress(self, db, store, interactive_token, connector, activity):
        connector.list_orders.return_value = make_page(order_payload(1001), order_payload(1002, prod_no=88))
        service = SyncService(db, connector, activity=activity, sleep=no_sleep,
                              is_sync_target=lambda site, prod_no: prod_no == 77)

        events = await collect(service.run_manual_sync(SITE))

        assert events[-2].status == 'IN_PROGRESS'
        assert events[-2].progress == 95
        assert events[-2].message == "주문 1 / 2 동기화 중..."
        assert events[-1].result.total_records == 1
        assert service.get_latest_run(SITE).entries_synced == 1


class TestIncrementalSync:
    @pytest.mark.asyncio
    async def test_syncs_with_batch_token(self, db, service, store, batch_token, connector, activity):
        result = await service.run_incremental_sync(SITE)

        assert result.success
        assert result.synced_count == 2
        assert result.new_count == 2
        token = connector.list_orders.await_args.args[0]
        assert token == "batch-access"

        run = service.get_latest_run(SITE)
        assert run.trigger_type == 'scheduled'
        assert run.status == COMPLETED
        messages = [entry.message for entry in activity.get_logs()]
        assert any("동기화 완료" in message for message in messages)

    @pytest.mark.asyncio
    async def test_scheduled_runs_reuse_one_record(self, db, service, store, batch_token):
        await service.run_incremental_sync(SITE)
        await service.run_incremental_sync(SITE)
        assert db.query(SyncRun).filter(SyncRun.trigger_type == 'scheduled').count() == 1

    @pytest.mark.asyncio
    async def test_skipped_while_running(self, db, service, store, batch_token, connector):
        start_run(db)
        result = await service.run_incremental_sync(SITE)
        assert result.skipped
        assert not result.success
        connector.list_orders.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_batch_credential(self, db, service, store):
        with pytest.raises(CredentialUnavailableError) as exc_info:
            await service.run_incremental_sync(SITE)
        assert exc_info.value.code == ReasonCode.BATCH_CREDENTIAL_MISSING

    @pytest.mark.asyncio
    async def test_token_error_falls_back_to_interactive_token(
        self, db, service, store, batch_token, interactive_token, connector
    ):
        page = make_page(order_payload(1001))
        connector.list_orders.side_effect = [UpstreamAuthError("401")] * 3 + [page]

        result = await service.run_incremental_sync(SITE)

        assert result.success
        assert result.synced_count == 1
        assert connector.list_orders.await_count == 4
        assert connector.list_orders.await_args.args[0] == "interactive-access"

    @pytest.mark.asyncio
    async def test_token_error_refreshes_when_nothing_to_adopt(self, db, service, store, batch_token, connector):
        page = make_page(order_payload(1001))

        async def list_orders(token, *args, **kwargs):
            if token == "refreshed":
                return page
            raise UpstreamAuthError("401 Unauthorized", 401)

        connector.list_orders.side_effect = list_orders
        connector.refresh_token.return_value = ImwebTokenResponse(access_token="refreshed", refresh_token="refresh-2")

        result = await service.run_incremental_sync(SITE)

        assert result.success
        assert result.synced_count == 1
        connector.refresh_token.assert_awaited_once_with("refresh-1")
        assert service.credentials.batch.get_current_access_token(SITE) == "refreshed"

    @pytest.mark.asyncio
    async def test_adopted_token_rejected_then_refresh(
        self, db, service, store, batch_token, interactive_token, connector
    ):
        page = make_page(order_payload(1001))

        async def list_orders(token, *args, **kwargs):
            if token == "refreshed":
                return page
            raise UpstreamAuthError("401 Unauthorized", 401)

        connector.list_orders.side_effect = list_orders
        connector.refresh_token.return_value = ImwebTokenResponse(access_token="refreshed")

        result = await service.run_incremental_sync(SITE)

        assert result.success
        tokens = [call.args[0] for call in connector.list_orders.await_args_list]
        assert tokens == ["batch-access"] * 3 + ["interactive-access"] * 3 + ["refreshed"]
        connector.refresh_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_token_error_without_fallback_fails_run(self, db, service, store, batch_token, connector):
        connector.list_orders.side_effect = UpstreamAuthError("401")
        connector.refresh_token.side_effect = UpstreamAuthError("invalid_grant")

        with pytest.raises(UpstreamAuthError):
            await service.run_incremental_sync(SITE)

        connector.refresh_token.assert_awaited_once()
        run = service.get_latest_run(SITE)
        assert run.status == FAILED
        assert run.end_time is not None

    @pytest.mark.asyncio
    async def test_unavailable_upstream_fails_with_reason(self, db, service, store, batch_token, connector, activity):
        connector.list_orders.side_effect = UpstreamUnavailableError("Imweb API unavailable (HTTP 503)", 503)

        with pytest.raises(SyncError) as exc_info:
            await service.run_incremental_sync(SITE)

        assert exc_info.value.code == ReasonCode.UPSTREAM_UNAVAILABLE
        assert str(exc_info.value) == "아임웹 API를 사용할 수 없습니다: Imweb API unavailable (HTTP 503)"
        assert service.get_latest_run(SITE).error_message == str(exc_info.value)
        connector.refresh_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_payment_change_applies_auto_transition(self, db, service, store, batch_token, connector):
        connector.list_orders.return_value = make_page(order_payload(1001, payment_status="PAYMENT_PENDING"))
        await service.run_incremental_sync(SITE)
        order = db.query(SyncOrder).filter(SyncOrder.order_no == 1001).one()
        assert order.management_status == AWAITING_PAYMENT

        connector.list_orders.return_value = make_page(order_payload(1001, payment_status="PAYMENT_COMPLETE"))
        await service.run_incremental_sync(SITE)

        db.refresh(order)
        assert order.management_status == NEEDS_REVIEW
        history = db.query(SyncOrderStatusHistory).filter(SyncOrderStatusHistory.sync_order_id == order.id).all()
        assert [(h.previous_status, h.new_status, h.changed_by) for h in history] == [
            (AWAITING_PAYMENT, NEEDS_REVIEW, "system")
        ]

    @pytest.mark.asyncio
    async def test_orders_before_window_are_skipped(self, db, service, store, batch_token, connector):
        connector.list_orders.return_value = make_page(order_payload(1001, hours_ago=30), order_payload(1002))
        result = await service.run_incremental_sync(SITE)
        assert result.synced_count == 1
        assert db.query(SyncOrder).one().order_no == 1002


class TestRealtimeCheck:
    @pytest.mark.asyncio
    async def test_refund_detected(self, db, service, store, interactive_token, connector):
        await collect(service.run_manual_sync(SITE))
        order = db.query(SyncOrder).filter(SyncOrder.order_no == 1001).one()
        connector.get_order.return_value = ImwebOrder.model_validate(order_payload(1001, payment_status="REFUND_COMPLETE"))

        result = await service.check_payment_status_realtime(SITE, [order.id])

        assert result.checked_count == 1
        assert len(result.updated_orders) == 1
        assert result.updated_orders[0].management_status == REFUND
        db.refresh(order)
        assert order.payment_status == "REFUND_COMPLETE"
        assert order.last_realtime_check is not None

        # Checked moments ago
        again = await service.check_payment_status_realtime(SITE, [order.id])
        assert again.checked_count == 0
        assert again.skipped_count == 1

    @pytest.mark.asyncio
    async def test_manual_orders_are_skipped(self, db, service, store, interactive_token, connector):
        created = service.create_manual_order(SITE, valid_manual_request())
        result = await service.check_payment_status_realtime(SITE, [created.order_id])
        assert result.skipped_count == 1
        connector.get_order.assert_not_awaited()


def valid_manual_request(**overrides):
    data = dict(name="이수진", gender="여", phone="01098765432", birth_year="1992",
                job="디자이너", preferred_date="5월 3일 (토)", prod_no=77, prod_name="모임")
    data.update(overrides)
    return ManualOrderRequest(**data)


class TestManualOrders:
    def test_create_assigns_negative_numbers(self, db, service, store):
        first = service.create_manual_order(SITE, valid_manual_request())
        second = service.create_manual_order(SITE, valid_manual_request(name="박민수", gender="남"))
        assert first.order_no == -1
        assert second.order_no == -2

        order = db.get(SyncOrder, first.order_id)
        assert order.is_manual_order is True
        assert order.payment_status == "MANUAL_ORDER"
        assert order.management_status == NEEDS_REVIEW
        assert order.opt_preferred_date == "5월3일 (토)"

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"name": " "}, "이름을 입력해주세요."),
            ({"gender": "x"}, "성별을 선택해주세요."),
            ({"phone": "0212345678"}, "전화번호 형식이 올바르지 않습니다. (예: 01012345678)"),
            ({"birth_year": "92"}, "출생년도 형식이 올바르지 않습니다. (예: 1990)"),
            ({"preferred_date": ""}, "참석날짜를 선택해주세요."),
            ({"prod_no": None}, "상품을 선택해주세요."),
        ],
    )
    def test_validation(self, db, service, overrides, message):
        with pytest.raises(ManualOrderError) as exc_info:
            service.create_manual_order(SITE, valid_manual_request(**overrides))
        assert str(exc_info.value) == message

    def test_delete_only_manual_orders(self, db, service, store, interactive_token):
        synced = SyncOrder(site_code=SITE, order_no=5000, management_status=CONFIRMED,
                           notification_sent=False, is_manual_order=False)
        db.add(synced)
        db.commit()

        with pytest.raises(ManualOrderError) as exc_info:
            service.delete_manual_order(synced.id)
        assert exc_info.value.code == ReasonCode.NOT_MANUAL_ORDER

        created = service.create_manual_order(SITE, valid_manual_request())
        assert service.delete_manual_order(created.order_id) == -1
        assert db.get(SyncOrder, created.order_id) is None

        with pytest.raises(OrderNotFoundError):
            service.delete_manual_order(created.order_id)

    def test_preferred_dates_within_three_months(self, db, service, store):
        for preferred_date in ["5월 3일 (토)", "4월 30일 (수)", "10월 1일 (수)"]:
            service.create_manual_order(SITE, valid_manual_request(preferred_date=preferred_date))
        service.create_manual_order(SITE, valid_manual_request())
        db.add(SyncOrder(site_code="other-site", order_no=1, opt_preferred_date="5월1일",
                         management_status=NEEDS_REVIEW, notification_sent=False, is_manual_order=False))
        db.commit()

        dates = service.list_preferred_dates(SITE, today=date(2025, 4, 24))

        assert dates == ["4월30일 (수)", "5월3일 (토)"]


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_deletes_site_data(self, db, service, store, interactive_token):
        await collect(service.run_manual_sync(SITE))
        order = db.query(SyncOrder).first()
        service.workflow.change_status(order.id, CONFIRMED)

        result = service.reset_all_sync_data(SITE)

        assert result.order_deleted == 2
        assert result.status_history_deleted == 1
        assert result.order_category_deleted == 2
        assert result.category_deleted == 2
        assert result.run_deleted == 1
        assert db.query(SyncOrder).count() == 0

    def test_reset_refused_while_running(self, db, service):
        start_run(db)
        with pytest.raises(SyncInProgressError):
            service.reset_all_sync_data(SITE)
