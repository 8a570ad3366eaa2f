import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.connectors.base import BaseConnector, UpstreamError
from app.constants.statuses import MANUAL_ORDER_PAYMENT_STATUS, NEEDS_REVIEW
from app.constants.sync_reasons import ReasonCode, explain_reason
from app.exceptions import (
    CredentialUnavailableError,
    ManualOrderError,
    OrderNotFoundError,
    SyncError,
    SyncInProgressError,
)
from app.models.category import SyncCategory, SyncOrderCategory
from app.models.status_history import SyncOrderStatusHistory
from app.models.store import Store
from app.models.sync_order import SyncOrder
from app.models.sync_run import SyncRun
from app.schemas.imweb import ImwebCategory, ImwebOrder, ImwebOrderPage, ImwebProduct
from app.schemas.sync import (
    IncrementalSyncResult,
    ManualOrderRequest,
    ManualOrderResult,
    RealtimeCheckResult,
    RealtimeOrderUpdate,
    SyncProgressEvent,
    SyncProgressResult,
    SyncResetResult,
)
from app.services.credential_coordinator import CredentialCoordinator, TokenRetryHelper, is_token_error
from app.services.record_merger import RecordMerger, UpsertResult, all_prod_nos, first_payment, first_prod_no
from app.services.scheduler_log import SchedulerLogService, scheduler_log
from app.services.status_workflow import StatusWorkflow
from app.services.window_planner import SyncWindow, WindowPlanner
from app.utils.clock import as_utc, utc_now
from app.utils.dates import (
    filter_dates_within_months,
    normalize_preferred_date,
    parse_preferred_date,
    sort_preferred_dates,
)

log = logging.getLogger(__name__)

RUNNING = 'running'
COMPLETED = 'completed'
FAILED = 'failed'

MANUAL_PROGRESS_EVERY = 5
SCHEDULED_PROGRESS_EVERY = 10
MAX_AUTH_FALLBACKS = 2

PHONE_PATTERN = re.compile(r"^01[0-9]{8,9}$")
BIRTH_YEAR_PATTERN = re.compile(r"^(19|20)\d{2}$")

SyncTargetPredicate = Callable[[str, Optional[int]], bool]


def is_upstream_outage(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and not is_token_error(exc)


def describe_failure(exc: BaseException) -> str:
    """Operator message for a failed run; upstream outages get the reason template."""
    if is_upstream_outage(exc):
        return explain_reason(ReasonCode.UPSTREAM_UNAVAILABLE, {"detail": str(exc)})
    return str(exc)


@dataclass
class RunCounts:
    fetched: int = 0
    synced: int = 0
    failed: int = 0
    new: int = 0
    updated: int = 0

    @property
    def processed(self) -> int:
        return self.synced + self.failed

    def record(self, result: UpsertResult) -> None:
        self.synced += 1
        if result.is_new:
            self.new += 1
        else:
            self.updated += 1

    def as_result(self) -> SyncProgressResult:
        return SyncProgressResult(
            new_records=self.new,
            updated_records=self.updated,
            total_records=self.synced,
            failed_records=self.failed,
        )


@dataclass
class RunContext:
    """Per-run state shared by the page loop and order processing."""

    site_code: str
    unit_code: str
    retry: TokenRetryHelper
    window: SyncWindow
    seen: set = field(default_factory=set)
    products: Dict[int, ImwebProduct] = field(default_factory=dict)


class SyncService:
    """
    Pulls Imweb orders into sync_orders, one run at a time per site.

    Manual runs use the operator's credential and stream progress; scheduled
    runs use the batch credential and the overlapping incremental window.
    """

    def __init__(
        self,
        db: Session,
        connector: Optional[BaseConnector],
        credentials: Optional[CredentialCoordinator] = None,
        planner: Optional[WindowPlanner] = None,
        workflow: Optional[StatusWorkflow] = None,
        merger: Optional[RecordMerger] = None,
        activity: Optional[SchedulerLogService] = None,
        is_sync_target: Optional[SyncTargetPredicate] = None,
        sleep: Callable = asyncio.sleep,
    ):
        self.db = db
        self.connector = connector
        self.credentials = credentials or CredentialCoordinator.create(db, connector)
        self.planner = planner or WindowPlanner()
        self.workflow = workflow or StatusWorkflow(db)
        self.merger = merger or RecordMerger(self.workflow)
        self.activity = activity or scheduler_log
        self.is_sync_target = is_sync_target
        self.sleep = sleep
        self.page_delay = settings.sync_page_delay_ms / 1000

    # Run records

    def find_running_run(self, site_code: str, now: Optional[datetime] = None) -> Optional[SyncRun]:
        """Active run for the site; runs without progress past the stale threshold are failed on the way."""
        now = now or utc_now()
        stale_before = now - timedelta(minutes=settings.stale_run_minutes)
        runs = (
            self.db.query(SyncRun)
            .filter(SyncRun.site_code == site_code, SyncRun.status == RUNNING)
            .order_by(SyncRun.start_time.desc())
            .all()
        )
        active = None
        stale_found = False
        for run in runs:
            last_seen = as_utc(run.last_progress_at or run.start_time)
            if last_seen < stale_before:
                log.warning(f"Sync run #{run.id} for site {site_code} is stale (last progress {last_seen}), marking failed")
                run.status = FAILED
                run.end_time = now
                run.error_message = explain_reason(ReasonCode.STALE_RUN, {"minutes": settings.stale_run_minutes})
                stale_found = True
            elif active is None:
                active = run
        if stale_found:
            self.db.commit()
        return active

    def is_running(self, site_code: str) -> bool:
        return self.find_running_run(site_code) is not None

    def ensure_not_running(self, site_code: str) -> None:
        if self.is_running(site_code):
            raise SyncInProgressError(site_code)

    def get_latest_run(self, site_code: str) -> Optional[SyncRun]:
        return (
            self.db.query(SyncRun)
            .filter(SyncRun.site_code == site_code)
            .order_by(SyncRun.start_time.desc(), SyncRun.id.desc())
            .first()
        )

    def list_runs(self, site_code: str, skip: int = 0, limit: int = 20) -> Tuple[List[SyncRun], int]:
        query = self.db.query(SyncRun).filter(SyncRun.site_code == site_code)
        total = query.count()
        runs = query.order_by(SyncRun.start_time.desc(), SyncRun.id.desc()).offset(skip).limit(limit).all()
        return runs, total

    def _start_manual_run(self, site_code: str, window: SyncWindow) -> SyncRun:
        now = utc_now()
        run = SyncRun(
            site_code=site_code,
            sync_type='ORDERS',
            trigger_type='manual',
            status=RUNNING,
            window_start=window.start,
            window_end=window.end,
            start_time=now,
            last_progress_at=now,
        )
        self.db.add(run)
        self.db.commit()
        return run

    def _start_scheduled_run(self, site_code: str, window: SyncWindow) -> SyncRun:
        # One rolling record per site for scheduled runs
        run = (
            self.db.query(SyncRun)
            .filter(SyncRun.site_code == site_code, SyncRun.trigger_type == 'scheduled')
            .order_by(SyncRun.id.desc())
            .first()
        )
        if run is None:
            run = SyncRun(site_code=site_code, sync_type='ORDERS', trigger_type='scheduled')
            self.db.add(run)
        run.status = RUNNING
        run.window_start = window.start
        run.window_end = window.end
        run.start_time = utc_now()
        run.last_progress_at = run.start_time
        run.end_time = None
        run.error_message = None
        self._apply_counts(run, RunCounts())
        self.db.commit()
        return run

    @staticmethod
    def _apply_counts(run: SyncRun, counts: RunCounts) -> None:
        run.entries_fetched = counts.fetched
        run.entries_synced = counts.synced
        run.entries_failed = counts.failed
        run.entries_new = counts.new
        run.entries_updated = counts.updated

    def _save_progress(self, run: SyncRun, counts: RunCounts) -> None:
        self._apply_counts(run, counts)
        run.last_progress_at = utc_now()
        self.db.commit()

    @staticmethod
    def _progress_event(counts: RunCounts, final: bool = False) -> SyncProgressEvent:
        processed = counts.processed
        if final or counts.fetched <= 0:
            progress = 95
        else:
            progress = min(10 + processed * 85 // counts.fetched, 95)
        return SyncProgressEvent(
            status='IN_PROGRESS',
            message=f"주문 {processed} / {counts.fetched} 동기화 중...",
            progress=progress,
        )

    def _finish_run(self, run: SyncRun, status: str, counts: RunCounts, error: Optional[str] = None) -> None:
        try:
            self._apply_counts(run, counts)
            run.status = status
            run.end_time = utc_now()
            run.error_message = error[:2000] if error else None
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            log.error(f"Failed to record outcome of sync run #{run.id}: {e}")
            raise

    # Stores and credentials

    def get_store(self, site_code: str) -> Store:
        store = self.db.query(Store).filter(Store.site_code == site_code).first()
        if store is None:
            raise SyncError(ReasonCode.STORE_MISSING, {"site_code": site_code})
        if not store.unit_code:
            raise SyncError(ReasonCode.UNIT_CODE_MISSING, {"site_code": site_code})
        return store

    # Upstream calls

    async def _fetch_page(self, ctx: RunContext, page: int) -> ImwebOrderPage:
        log.info(f"Fetching orders page {page} for site {ctx.site_code}")
        return await ctx.retry.execute(
            ctx.site_code,
            lambda token: self.connector.list_orders(
                token,
                ctx.unit_code,
                page=page,
                limit=settings.sync_page_size,
                start_wtime=ctx.window.start_api,
                end_wtime=ctx.window.end_api,
            ),
            f"list orders page {page}",
        )

    async def _load_product(self, ctx: RunContext, prod_no: int) -> ImwebProduct:
        if prod_no not in ctx.products:
            ctx.products[prod_no] = await ctx.retry.execute(
                ctx.site_code,
                lambda token: self.connector.get_product(token, ctx.unit_code, prod_no),
                f"get product {prod_no}",
            )
        return ctx.products[prod_no]

    async def _load_member(self, ctx: RunContext, member_uid: str):
        return await ctx.retry.execute(
            ctx.site_code,
            lambda token: self.connector.get_member(token, ctx.unit_code, member_uid),
            "get member",
        )

    # Categories

    async def sync_categories(self, site_code: str, unit_code: str, retry: TokenRetryHelper) -> int:
        """Upsert the shop category tree. Failures are logged and do not fail the run."""
        try:
            categories = await retry.execute(
                site_code,
                lambda token: self.connector.get_categories(token, unit_code),
                "get categories",
            )
            count = 0
            for category in categories:
                count += self._upsert_category(site_code, category, None)
            self.db.commit()
            log.info(f"Synced {count} categories for site {site_code}")
            return count
        except Exception as e:
            self.db.rollback()
            log.error(f"Failed to sync categories for site {site_code}: {e}")
            return 0

    def _upsert_category(self, site_code: str, category: ImwebCategory, parent_code: Optional[str]) -> int:
        if not category.category_code:
            return 0
        row = (
            self.db.query(SyncCategory)
            .filter(SyncCategory.site_code == site_code, SyncCategory.category_code == category.category_code)
            .first()
        )
        if row is None:
            row = SyncCategory(site_code=site_code, category_code=category.category_code)
            self.db.add(row)
        row.name = category.name
        row.parent_code = parent_code
        count = 1
        for child in category.children or []:
            count += self._upsert_category(site_code, child, category.category_code)
        return count

    async def _collect_category_codes(self, ctx: RunContext, order: ImwebOrder) -> List[str]:
        codes: List[str] = []
        for prod_no in all_prod_nos(order):
            product = ctx.products.get(prod_no)
            if product is None:
                product = await ctx.retry.execute_or_none(
                    ctx.site_code,
                    lambda token, p=prod_no: self.connector.get_product(token, ctx.unit_code, p),
                )
                if product is None:
                    log.debug(f"Failed to get categories for prodNo {prod_no} (order {order.order_no})")
                    continue
                ctx.products[prod_no] = product
            for code in product.categories or []:
                if code not in codes:
                    codes.append(code)
        return codes

    def _replace_order_categories(self, record: SyncOrder, codes: List[str]) -> None:
        self.db.query(SyncOrderCategory).filter(SyncOrderCategory.sync_order_id == record.id).delete(
            synchronize_session=False
        )
        for code in codes:
            self.db.add(SyncOrderCategory(sync_order_id=record.id, site_code=record.site_code, category_code=code))
        if codes:
            log.debug(f"Mapped {len(codes)} categories for order {record.order_no}")

    # Orders

    def _is_target(self, site_code: str, order: ImwebOrder) -> bool:
        if self.is_sync_target is None:
            return True
        return self.is_sync_target(site_code, first_prod_no(order))

    async def _process_order(self, ctx: RunContext, order: ImwebOrder) -> UpsertResult:
        lookups = await self.merger.collect_lookups(
            order,
            lambda prod_no: self._load_product(ctx, prod_no),
            lambda member_uid: self._load_member(ctx, member_uid),
        )
        merged = self.merger.merge(ctx.site_code, ctx.unit_code, order, lookups.product, lookups.member)
        result = self.merger.upsert(self.db, merged)

        if not result.is_new and result.previous_payment_status != merged.payment_status:
            log.info(
                f"Payment status of order {order.order_no} changed: "
                f"{result.previous_payment_status} -> {merged.payment_status}"
            )
            self.workflow.apply_auto_transition(result.order, merged.payment_status)

        codes = await self._collect_category_codes(ctx, order)
        self._replace_order_categories(result.order, codes)
        self.db.commit()
        return result

    async def _process_safely(self, ctx: RunContext, order: ImwebOrder, counts: RunCounts) -> bool:
        try:
            result = await self._process_order(ctx, order)
        except Exception as e:
            self.db.rollback()
            counts.failed += 1
            log.error(f"Failed to sync order {order.order_no} for site {ctx.site_code}: {e}")
            return False
        counts.record(result)
        log.debug(f"Synced order {order.order_no} ({'new' if result.is_new else 'updated'})")
        return True

    # Manual run

    async def run_manual_sync(self, site_code: str, range_days: Optional[int] = None) -> AsyncIterator[SyncProgressEvent]:
        """Full-range sync streaming progress events; never raises for run failures."""
        log.info(f"=== Starting manual order sync for site {site_code} ===")

        if self.is_running(site_code):
            log.warning(f"Sync already running for site {site_code}")
            yield SyncProgressEvent(status='FAILED', message=explain_reason(ReasonCode.SYNC_IN_PROGRESS), progress=0)
            return

        token = await self.credentials.interactive.get_valid_access_token(site_code)
        if not token:
            yield SyncProgressEvent(
                status='FAILED',
                message=explain_reason(ReasonCode.CREDENTIAL_MISSING, {"site_code": site_code}),
                progress=0,
            )
            return

        try:
            store = self.get_store(site_code)
        except SyncError as e:
            yield SyncProgressEvent(status='FAILED', message=str(e), progress=0)
            return

        window = self.planner.full_window(days=range_days)
        ctx = RunContext(
            site_code=site_code,
            unit_code=store.unit_code,
            retry=self.credentials.interactive_retry(sleep=self.sleep),
            window=window,
        )
        run = self._start_manual_run(site_code, window)
        counts = RunCounts()
        log.info(f"Sync run #{run.id} window: {window}")

        try:
            yield SyncProgressEvent(status='IN_PROGRESS', message="카테고리 정보 동기화 중...", progress=1)
            await self.sync_categories(site_code, ctx.unit_code, ctx.retry)

            yield SyncProgressEvent(status='IN_PROGRESS', message="주문 목록 조회 중...", progress=5)

            page = 1
            has_more = True
            while has_more:
                order_page = await self._fetch_page(ctx, page)
                if page == 1:
                    counts.fetched = order_page.total_count
                    self._save_progress(run, counts)
                    yield SyncProgressEvent(
                        status='IN_PROGRESS',
                        message=f"총 {counts.fetched}건의 주문 동기화 시작",
                        progress=10,
                    )

                log.info(f"Processing {len(order_page.orders)} orders (page {page}/{order_page.total_page})")
                for order in self.planner.filter_page(order_page.orders, window, ctx.seen):
                    if not self._is_target(site_code, order):
                        log.debug(f"Skipping order {order.order_no}: prodNo {first_prod_no(order)} is not a sync target")
                        continue

                    await self._process_safely(ctx, order, counts)

                    if counts.processed % MANUAL_PROGRESS_EVERY == 0:
                        self._save_progress(run, counts)
                        yield self._progress_event(counts)

                has_more = page < order_page.total_page
                page += 1
                self._save_progress(run, counts)
                await self.sleep(self.page_delay)

            # Filtered orders never reach processed == fetched, so close out here
            if counts.processed % MANUAL_PROGRESS_EVERY != 0:
                yield self._progress_event(counts, final=True)

            self._finish_run(run, COMPLETED, counts)
            log.info(f"=== Manual order sync completed for site {site_code}: synced={counts.synced}, failed={counts.failed} ===")
            yield SyncProgressEvent(status='COMPLETED', message="동기화 완료", progress=100, result=counts.as_result())

        except (GeneratorExit, asyncio.CancelledError):
            # Client went away mid-stream
            self.db.rollback()
            self._finish_run(run, FAILED, counts, "동기화가 중단되었습니다.")
            raise
        except Exception as e:
            log.error(f"Manual order sync failed for site {site_code}: {e}", exc_info=True)
            self.db.rollback()
            reason = describe_failure(e)
            self._finish_run(run, FAILED, counts, reason)
            yield SyncProgressEvent(
                status='FAILED',
                message=f"동기화 실패: {reason}",
                progress=0,
                result=counts.as_result(),
            )

    # Scheduled run

    async def run_incremental_sync(self, site_code: str) -> IncrementalSyncResult:
        """Overlapping-window sync with the batch credential.

        Returns a skipped result when another run is active. Raises SyncError
        when the run cannot start and re-raises run-level failures after
        recording them.
        """
        activity = self.activity
        log.info(f"=== Starting incremental sync for site {site_code} ===")

        if self.is_running(site_code):
            log.warning(f"Skipping scheduled sync for site {site_code}: another run is active")
            activity.warn("다른 동기화가 진행 중이어서 건너뜁니다.", site_code)
            return IncrementalSyncResult(
                success=False, skipped=True, message=explain_reason(ReasonCode.SYNC_IN_PROGRESS)
            )

        activity.debug("배치 토큰 확인 중...", site_code)
        token = await self.credentials.batch.get_valid_access_token(site_code)
        if not token:
            raise CredentialUnavailableError(ReasonCode.BATCH_CREDENTIAL_MISSING, {"site_code": site_code})
        activity.debug("배치 토큰 확인 완료", site_code)

        store = self.get_store(site_code)
        activity.debug(f"스토어 정보: unitCode={store.unit_code}", site_code)

        window = self.planner.incremental_window()
        ctx = RunContext(
            site_code=site_code,
            unit_code=store.unit_code,
            retry=self.credentials.batch_retry(sleep=self.sleep),
            window=window,
        )
        activity.info(f"중첩 증분 동기화: 최근 {settings.sync_overlap_hours}시간 범위 조회", site_code)
        activity.info(f"조회 기간(KST): {window.start_display} ~ {window.end_display}", site_code)
        activity.debug(f"API 호출 시간(UTC): {window.start_api} ~ {window.end_api}", site_code)
        log.info(f"Sync period: {window}")

        run = self._start_scheduled_run(site_code, window)
        counts = RunCounts()

        try:
            page = 1
            has_more = True
            auth_fallbacks = 0
            activity.info("신규 주문 조회 시작 (주문생성일 기준)...", site_code)

            while has_more:
                try:
                    order_page = await self._fetch_page(ctx, page)
                except Exception as e:
                    if not is_token_error(e) or auth_fallbacks >= MAX_AUTH_FALLBACKS:
                        raise
                    auth_fallbacks += 1
                    new_token = None
                    if auth_fallbacks == 1:
                        activity.warn(f"토큰 오류 발생, 재시도 {auth_fallbacks}/{MAX_AUTH_FALLBACKS} (어드민 토큰 복사)", site_code)
                        new_token = self.credentials.batch.force_copy_from_interactive(site_code)
                    if not new_token:
                        activity.warn(f"토큰 오류 발생, 재시도 {auth_fallbacks}/{MAX_AUTH_FALLBACKS} (리프레시 토큰)", site_code)
                        new_token = await self.credentials.batch.force_refresh(site_code)
                    if not new_token:
                        activity.error("토큰 갱신 실패", site_code)
                        raise
                    activity.info("토큰 갱신 성공, 재시도 중...", site_code)
                    continue

                if page == 1:
                    counts.fetched = order_page.total_count
                    activity.info(f"API 응답: 총 {order_page.total_count}건 ({order_page.total_page}페이지)", site_code)

                log.debug(f"Processing {len(order_page.orders)} orders (page {page}/{order_page.total_page})")
                for order in self.planner.filter_page(order_page.orders, window, ctx.seen):
                    if not self._is_target(site_code, order):
                        continue
                    if await self._process_safely(ctx, order, counts):
                        activity.debug(f"주문 #{order.order_no} 동기화 완료", site_code)
                    else:
                        activity.warn(f"주문 #{order.order_no} 동기화 실패", site_code)
                    if counts.processed % SCHEDULED_PROGRESS_EVERY == 0:
                        self._save_progress(run, counts)

                has_more = page < order_page.total_page
                page += 1
                self._save_progress(run, counts)
                await self.sleep(self.page_delay)

        except Exception as e:
            log.error(f"Incremental sync failed for site {site_code}: {e}", exc_info=True)
            self.db.rollback()
            reason = describe_failure(e)
            self._finish_run(run, FAILED, counts, reason)
            activity.error(f"증분 동기화 실패: {reason}", site_code)
            if is_upstream_outage(e):
                raise SyncError(ReasonCode.UPSTREAM_UNAVAILABLE, message=reason) from e
            raise

        self._finish_run(run, COMPLETED, counts)
        if counts.synced > 0:
            log.info(f"Incremental sync completed for site {site_code}: {counts.synced} synced, {counts.failed} failed")
            activity.success(f"동기화 완료: {counts.synced}건 성공, {counts.failed}건 실패", site_code)
        else:
            log.info(f"Incremental sync completed for site {site_code}: no new orders")
            activity.info("동기화 완료: 새 주문 없음", site_code)

        return IncrementalSyncResult(
            success=True,
            synced_count=counts.synced,
            failed_count=counts.failed,
            new_count=counts.new,
            updated_count=counts.updated,
            window_start=window.start_display,
            window_end=window.end_display,
            message="동기화 완료",
        )

    # Live payment check

    async def check_payment_status_realtime(
        self,
        site_code: str,
        order_ids: List[int],
        now: Optional[datetime] = None,
    ) -> RealtimeCheckResult:
        """Re-read payment status of the given orders straight from Imweb."""
        result = RealtimeCheckResult()
        if not order_ids:
            return result

        now = now or utc_now()
        fresh_after = now - timedelta(minutes=settings.realtime_check_cache_minutes)
        store = self.get_store(site_code)
        retry = self.credentials.interactive_retry(sleep=self.sleep)

        orders = (
            self.db.query(SyncOrder)
            .filter(SyncOrder.site_code == site_code, SyncOrder.id.in_(order_ids))
            .all()
        )
        for order in orders:
            if order.is_manual_order:
                result.skipped_count += 1
                continue
            if order.last_realtime_check and as_utc(order.last_realtime_check) > fresh_after:
                result.skipped_count += 1
                continue

            result.checked_count += 1
            try:
                detail = await retry.execute(
                    site_code,
                    lambda token, order_no=order.order_no: self.connector.get_order(token, store.unit_code, order_no),
                    f"get order {order.order_no}",
                )
            except Exception as e:
                log.warning(f"Realtime check failed for order {order.order_no}: {e}")
                continue

            order.last_realtime_check = now
            payment = first_payment(detail)
            new_payment_status = payment.payment_status if payment else None
            if new_payment_status and new_payment_status != order.payment_status:
                log.info(f"Realtime check: order {order.order_no} payment {order.payment_status} -> {new_payment_status}")
                order.payment_status = new_payment_status
                self.workflow.apply_auto_transition(order, new_payment_status)
                result.updated_orders.append(
                    RealtimeOrderUpdate(
                        id=order.id,
                        order_no=order.order_no,
                        payment_status=order.payment_status,
                        management_status=order.management_status,
                        notification_eligible=self.workflow.is_notification_eligible(order),
                    )
                )
            self.db.commit()

        log.info(
            f"Realtime check for site {site_code}: checked={result.checked_count}, "
            f"skipped={result.skipped_count}, updated={len(result.updated_orders)}"
        )
        return result

    # Operator-entered orders

    def _validate_manual_order(self, request: ManualOrderRequest) -> None:
        errors = [
            (not request.name.strip(), "이름을 입력해주세요."),
            (request.gender not in ("남", "여"), "성별을 선택해주세요."),
            (not PHONE_PATTERN.match(request.phone), "전화번호 형식이 올바르지 않습니다. (예: 01012345678)"),
            (not BIRTH_YEAR_PATTERN.match(request.birth_year), "출생년도 형식이 올바르지 않습니다. (예: 1990)"),
            (not request.preferred_date.strip(), "참석날짜를 선택해주세요."),
            (request.prod_no is None, "상품을 선택해주세요."),
        ]
        for failed, message in errors:
            if failed:
                raise ManualOrderError(ReasonCode.OTHER, message=message)

    def list_preferred_dates(self, site_code: str, months: int = 3, today: Optional[date] = None) -> List[str]:
        """Distinct preferred dates seen for the site within +/- months, nearest first."""
        rows = (
            self.db.query(SyncOrder.opt_preferred_date)
            .filter(SyncOrder.site_code == site_code, SyncOrder.opt_preferred_date.isnot(None))
            .distinct()
            .all()
        )
        dates = []
        for (value,) in rows:
            normalized = normalize_preferred_date(value)
            if normalized and normalized not in dates:
                dates.append(normalized)
        return sort_preferred_dates(filter_dates_within_months(dates, months, today), today)

    def next_manual_order_no(self, site_code: str) -> int:
        lowest = (
            self.db.query(func.min(SyncOrder.order_no))
            .filter(SyncOrder.site_code == site_code, SyncOrder.order_no < 0)
            .scalar()
        )
        return lowest - 1 if lowest is not None else -1

    def create_manual_order(self, site_code: str, request: ManualOrderRequest, today: Optional[date] = None) -> ManualOrderResult:
        log.info(f"Creating manual order for site {site_code}: {request.name}")
        self._validate_manual_order(request)
        today = today or date.today()

        store = self.db.query(Store).filter(Store.site_code == site_code).first()
        order = SyncOrder(
            site_code=site_code,
            unit_code=store.unit_code if store else None,
            order_no=self.next_manual_order_no(site_code),
            orderer_name=request.name.strip(),
            orderer_call=request.phone,
            opt_gender=request.gender,
            opt_birth_year=request.birth_year,
            opt_age=today.year - int(request.birth_year),
            opt_job=request.job,
            opt_preferred_date=normalize_preferred_date(request.preferred_date),
            order_event_date_dt=parse_preferred_date(request.preferred_date, today),
            prod_no=request.prod_no,
            prod_name=request.prod_name,
            management_status=NEEDS_REVIEW,
            payment_status=MANUAL_ORDER_PAYMENT_STATUS,
            notification_sent=False,
            is_manual_order=True,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        log.info(f"Manual order created: orderNo={order.order_no}, id={order.id}")
        return ManualOrderResult(order_id=order.id, order_no=order.order_no)

    def delete_manual_order(self, order_id: int) -> int:
        """Delete an operator-entered order; returns its order number."""
        order = self.db.get(SyncOrder, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if not order.is_manual_order:
            raise ManualOrderError(ReasonCode.NOT_MANUAL_ORDER)
        order_no, site_code = order.order_no, order.site_code
        self.db.delete(order)
        self.db.commit()
        log.info(f"Manual order {order_no} ({site_code}) deleted")
        return order_no

    # Reset

    def reset_all_sync_data(self, site_code: str) -> SyncResetResult:
        """Delete everything synced for the site. Refused while a run is active."""
        log.info(f"=== Starting sync data reset for site {site_code} ===")
        self.ensure_not_running(site_code)

        try:
            result = SyncResetResult(
                status_history_deleted=self._delete_for_site(SyncOrderStatusHistory, site_code),
                order_category_deleted=self._delete_for_site(SyncOrderCategory, site_code),
                order_deleted=self._delete_for_site(SyncOrder, site_code),
                category_deleted=self._delete_for_site(SyncCategory, site_code),
                run_deleted=self._delete_for_site(SyncRun, site_code),
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            log.error(f"Failed to reset sync data for site {site_code}: {e}", exc_info=True)
            raise

        log.info(f"=== Sync data reset completed for site {site_code}: {result.model_dump(exclude={'message'})} ===")
        return result

    def _delete_for_site(self, model, site_code: str) -> int:
        deleted = self.db.query(model).filter(model.site_code == site_code).delete(synchronize_session=False)
        log.info(f"Deleted {deleted} {model.__tablename__} rows for site {site_code}")
        return deleted
