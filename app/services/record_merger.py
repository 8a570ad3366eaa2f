"""Builds the combined SyncOrder record from an Imweb order.

An order is merged from its header, first payment, first section, first
line item, the line item's product detail and (for member orders) the member
detail. Product and member lookups are best-effort: a failed lookup leaves the
related columns empty and the order is still stored.

Columns owned by the local workflow are never written by a re-sync; see
OPERATOR_OWNED_FIELDS.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.sync_order import SyncOrder
from app.schemas.imweb import (
    ImwebDelivery,
    ImwebMember,
    ImwebOrder,
    ImwebPayment,
    ImwebProduct,
    ImwebProductInfo,
    ImwebSection,
    ImwebSectionItem,
)
from app.services.status_workflow import StatusWorkflow
from app.services.window_planner import parse_wtime
from app.utils.clock import utc_now
from app.utils.dates import normalize_preferred_date, parse_preferred_date

log = logging.getLogger(__name__)

OPERATOR_OWNED_FIELDS = frozenset({
    "management_status",
    "carryover_round",
    "notification_sent",
    "notification_sent_at",
    "last_realtime_check",
    "is_manual_order",
})

GENDER_KEYS = ("성별", "gender")
BIRTH_KEYS = ("출생", "생년", "년도", "birth")
JOB_KEYS = ("직업", "회사", "job")
PREFERRED_DATE_KEYS = ("참여", "희망", "날짜")

FOUR_DIGIT_YEAR = re.compile(r"(19|20)\d{2}")
TWO_DIGIT_YEAR = re.compile(r"^\d{2}$")

SOCIAL_LOGIN_PROVIDERS = (
    ("kakao", "kakao_id"),
    ("naver", "naver_id"),
    ("google", "google_id"),
    ("facebook", "facebook_id"),
    ("apple", "apple_id"),
    ("line", "line_id"),
)


# Optional accessors: each returns None when the level is missing


def first_payment(order: ImwebOrder) -> Optional[ImwebPayment]:
    return order.payments[0] if order.payments else None


def first_section(order: ImwebOrder) -> Optional[ImwebSection]:
    return order.sections[0] if order.sections else None


def first_item(order: ImwebOrder) -> Optional[ImwebSectionItem]:
    section = first_section(order)
    if section is None or not section.section_items:
        return None
    return section.section_items[0]


def delivery_of(section: Optional[ImwebSection]) -> Optional[ImwebDelivery]:
    return section.delivery if section else None


def product_info_of(item: Optional[ImwebSectionItem]) -> Optional[ImwebProductInfo]:
    return item.product_info if item else None


def first_prod_no(order: ImwebOrder) -> Optional[int]:
    info = product_info_of(first_item(order))
    return info.prod_no if info else None


def all_prod_nos(order: ImwebOrder) -> List[int]:
    """Product numbers of every item in every section, in order, without repeats."""
    prod_nos: List[int] = []
    for section in order.sections or []:
        for item in section.section_items or []:
            info = item.product_info
            if info and info.prod_no is not None and info.prod_no not in prod_nos:
                prod_nos.append(info.prod_no)
    return prod_nos


@dataclass
class ParsedOptions:
    gender: Optional[str] = None
    birth_year: Optional[str] = None
    age: Optional[int] = None
    job: Optional[str] = None
    preferred_date: Optional[str] = None


def _parse_gender(value: str) -> Optional[str]:
    lowered = value.lower()
    if "남" in value:
        return "남"
    # "female" contains "male"
    if "여" in value or "female" in lowered:
        return "여"
    if "male" in lowered:
        return "남"
    return value if value.strip() else None


def _parse_birth_year(value: str) -> Optional[str]:
    match = FOUR_DIGIT_YEAR.search(value)
    if match:
        return match.group(0)
    stripped = value.strip()
    if TWO_DIGIT_YEAR.match(stripped):
        return f"19{stripped}" if int(stripped) > 30 else f"20{stripped}"
    return None


def parse_order_options(option_info: Optional[Dict[str, Any]], current_year: Optional[int] = None) -> ParsedOptions:
    """Extract demographic fields from the buyer's free-form option answers.

    Keys are matched by substring, case-insensitively; when several keys
    match the same field the last one wins.
    """
    parsed = ParsedOptions()
    if not option_info:
        return parsed

    for key, value in option_info.items():
        key_str = str(key).lower()
        value_str = "" if value is None else str(value)

        if any(token in key_str for token in GENDER_KEYS):
            parsed.gender = _parse_gender(value_str)
        if any(token in key_str for token in BIRTH_KEYS):
            parsed.birth_year = _parse_birth_year(value_str)
        if any(token in key_str for token in JOB_KEYS):
            parsed.job = value_str if value_str.strip() else None
        if any(token in key_str for token in PREFERRED_DATE_KEYS):
            parsed.preferred_date = value_str if value_str.strip() else None

    if parsed.birth_year:
        parsed.age = (current_year or date.today().year) - int(parsed.birth_year)
    return parsed


def social_login_type(member: Optional[ImwebMember]) -> Optional[str]:
    if member is None or member.social_login is None:
        return None
    for provider, attribute in SOCIAL_LOGIN_PROVIDERS:
        if getattr(member.social_login, attribute):
            return provider
    return None


@dataclass
class OrderLookups:
    product: Optional[ImwebProduct] = None
    member: Optional[ImwebMember] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class MergedOrder:
    """Remote-sourced column values for one order plus its first-sync status."""

    site_code: str
    order_no: int
    fields: Dict[str, Any]
    initial_status: str

    @property
    def payment_status(self) -> Optional[str]:
        return self.fields.get("payment_status")


@dataclass
class UpsertResult:
    order: SyncOrder
    is_new: bool
    previous_payment_status: Optional[str] = None


class RecordMerger:
    """Merges upstream orders into SyncOrder rows."""

    def __init__(self, workflow: Optional[StatusWorkflow] = None):
        self.workflow = workflow or StatusWorkflow()

    async def collect_lookups(
        self,
        order: ImwebOrder,
        load_product: Callable[[int], Awaitable[ImwebProduct]],
        load_member: Callable[[str], Awaitable[ImwebMember]],
    ) -> OrderLookups:
        """Fetch product and member detail; failures become warnings."""
        lookups = OrderLookups()

        prod_no = first_prod_no(order)
        if prod_no is not None:
            try:
                lookups.product = await load_product(prod_no)
            except Exception as e:
                message = f"Failed to get product detail for prodNo {prod_no} (order {order.order_no}): {e}"
                log.warning(message)
                lookups.warnings.append(message)

        if order.member_uid and order.member_uid.strip() and order.is_member == "Y":
            try:
                lookups.member = await load_member(order.member_uid)
            except Exception as e:
                message = f"Failed to get member detail for memberUid {order.member_uid} (order {order.order_no}): {e}"
                log.warning(message)
                lookups.warnings.append(message)

        return lookups

    def merge(
        self,
        site_code: str,
        unit_code: Optional[str],
        order: ImwebOrder,
        product: Optional[ImwebProduct] = None,
        member: Optional[ImwebMember] = None,
        today: Optional[date] = None,
    ) -> MergedOrder:
        today = today or date.today()

        payment = first_payment(order)
        section = first_section(order)
        delivery = delivery_of(section)
        item = first_item(order)
        product_info = product_info_of(item)

        option_info = product_info.option_info if product_info else None
        options = parse_order_options(option_info, current_year=today.year)

        all_items = [
            section_item.model_dump(by_alias=True, exclude_none=True)
            for order_section in (order.sections or [])
            for section_item in (order_section.section_items or [])
        ]

        fields: Dict[str, Any] = {
            "site_code": site_code,
            "unit_code": unit_code,
            "order_no": order.order_no,
            # Header
            "order_status": order.order_status,
            "order_type": order.order_type,
            "sale_channel": order.sale_channel,
            "device": order.device,
            "country": order.country,
            "currency": order.currency,
            "total_price": order.total_price or 0,
            "total_payment_price": order.total_payment_price or 0,
            "total_delivery_price": order.total_delivery_price or 0,
            "total_discount_price": order.total_discount_price or 0,
            "orderer_name": order.orderer_name,
            "orderer_email": order.orderer_email,
            "orderer_call": order.orderer_call,
            "order_time": parse_wtime(order.wtime),
            "admin_url": order.admin_url,
            # Member
            "is_member": order.is_member,
            "member_code": order.member_code,
            "member_uid": order.member_uid,
            "member_gender": member.gender if member else None,
            "member_birth": member.birth if member else None,
            "member_join_time": member.join_time if member else None,
            "member_point": member.point if member else None,
            "member_grade": member.grade if member else None,
            "member_social_login": social_login_type(member),
            "member_sms_agree": member.sms_agree if member else None,
            "member_email_agree": member.email_agree if member else None,
            # Payment
            "payment_no": payment.payment_no if payment else None,
            "payment_status": payment.payment_status if payment else None,
            "payment_method": payment.method if payment else None,
            "pg_name": payment.pg_name if payment else None,
            "paid_price": (payment.paid_price or 0) if payment else 0,
            "payment_complete_time": payment.payment_complete_time if payment else None,
            # Section / delivery
            "order_section_status": section.order_section_status if section else None,
            "delivery_type": section.delivery_type if section else None,
            "receiver_name": delivery.receiver_name if delivery else None,
            "receiver_call": delivery.receiver_call if delivery else None,
            "delivery_zipcode": delivery.zipcode if delivery else None,
            "delivery_addr1": delivery.addr1 if delivery else None,
            "delivery_addr2": delivery.addr2 if delivery else None,
            "delivery_city": delivery.city if delivery else None,
            "delivery_state": delivery.state if delivery else None,
            "delivery_country": (delivery.country or delivery.country_name) if delivery else None,
            "delivery_memo": delivery.memo if delivery else None,
            # Line item / product
            "prod_no": product_info.prod_no if product_info else None,
            "prod_name": product_info.prod_name if product_info else None,
            "item_price": (product_info.item_price or 0) if product_info else 0,
            "item_qty": (item.qty or 1) if item else 1,
            "prod_code": product.prod_code if product else None,
            "prod_status": product.prod_status if product else None,
            "prod_type": product.prod_type if product else None,
            "prod_brand": product.brand if product else None,
            "prod_event_words": product.event_words if product else None,
            "prod_review_count": (product.review_count or 0) if product else 0,
            "prod_is_badge_best": product.is_badge_best if product else None,
            "prod_is_badge_hot": product.is_badge_hot if product else None,
            "prod_is_badge_new": product.is_badge_new if product else None,
            "prod_simple_content": product.simple_content if product else None,
            "prod_image_url": product.product_images[0] if product and product.product_images else None,
            # Raw structures
            "option_info": option_info,
            "form_data": order.form_data,
            "all_products": all_items or None,
            # Parsed options
            "opt_gender": options.gender,
            "opt_birth_year": options.birth_year,
            "opt_age": options.age,
            "opt_job": options.job,
            "opt_preferred_date": normalize_preferred_date(options.preferred_date),
            "order_event_date_dt": parse_preferred_date(options.preferred_date, today),
        }

        initial_status = self.workflow.initial_status(
            fields["payment_status"], fields["order_section_status"]
        )
        return MergedOrder(site_code=site_code, order_no=order.order_no, fields=fields, initial_status=initial_status)

    def apply_to(self, existing: Optional[SyncOrder], merged: MergedOrder, now: Optional[datetime] = None) -> Tuple[SyncOrder, bool]:
        """Copy remote fields onto ``existing`` (or a new row). Returns (record, is_new)."""
        now = now or utc_now()
        if existing is None:
            record = SyncOrder(
                management_status=merged.initial_status,
                notification_sent=False,
                is_manual_order=False,
            )
            is_new = True
        else:
            record = existing
            is_new = False

        for name, value in merged.fields.items():
            if name in OPERATOR_OWNED_FIELDS:
                continue
            setattr(record, name, value)
        record.synced_at = now
        return record, is_new

    def find_existing(self, db: Session, site_code: str, order_no: int) -> Optional[SyncOrder]:
        return (
            db.query(SyncOrder)
            .filter(SyncOrder.site_code == site_code, SyncOrder.order_no == order_no)
            .first()
        )

    def upsert(self, db: Session, merged: MergedOrder, now: Optional[datetime] = None) -> UpsertResult:
        """Insert or update by (site_code, order_no). Flushes; the caller commits."""
        existing = self.find_existing(db, merged.site_code, merged.order_no)
        previous_payment_status = existing.payment_status if existing else None
        record, is_new = self.apply_to(existing, merged, now)
        if is_new:
            db.add(record)
        db.flush()
        log.trace(f"{'Inserted' if is_new else 'Updated'} order {merged.order_no} ({merged.site_code}) as id {record.id}")
        return UpsertResult(order=record, is_new=is_new, previous_payment_status=previous_payment_status)
