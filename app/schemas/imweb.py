"""Imweb open API payloads.

The API speaks camelCase JSON wrapped in ``{"statusCode": ..., "data": ...}``;
connectors unwrap ``data`` and validate it into these models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ImwebModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ImwebProductInfo(ImwebModel):
    prod_no: Optional[int] = None
    prod_name: Optional[str] = None
    item_price: Optional[int] = None
    option_info: Optional[Dict[str, Any]] = None


class ImwebSectionItem(ImwebModel):
    order_section_item_no: Optional[str] = None
    qty: Optional[int] = None
    product_info: Optional[ImwebProductInfo] = None


class ImwebDelivery(ImwebModel):
    receiver_name: Optional[str] = None
    receiver_call: Optional[str] = None
    zipcode: Optional[str] = None
    addr1: Optional[str] = None
    addr2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    country_name: Optional[str] = None
    memo: Optional[str] = None


class ImwebSection(ImwebModel):
    order_section_no: Optional[str] = None
    order_section_status: Optional[str] = None
    delivery_type: Optional[str] = None
    delivery: Optional[ImwebDelivery] = None
    section_items: Optional[List[ImwebSectionItem]] = None


class ImwebPayment(ImwebModel):
    payment_no: Optional[str] = None
    payment_status: Optional[str] = None
    method: Optional[str] = None
    pg_name: Optional[str] = None
    paid_price: Optional[int] = None
    payment_complete_time: Optional[str] = None


class ImwebOrder(ImwebModel):
    order_no: Optional[int] = None
    order_status: Optional[str] = None
    order_type: Optional[str] = None
    sale_channel: Optional[str] = None
    device: Optional[str] = None
    country: Optional[str] = None
    currency: Optional[str] = None
    total_price: Optional[int] = None
    total_payment_price: Optional[int] = None
    total_delivery_price: Optional[int] = None
    total_discount_price: Optional[int] = None
    orderer_name: Optional[str] = None
    orderer_email: Optional[str] = None
    orderer_call: Optional[str] = None
    is_member: Optional[str] = None
    member_code: Optional[str] = None
    member_uid: Optional[str] = None
    wtime: Optional[str] = None
    admin_url: Optional[str] = None
    form_data: Optional[Any] = None
    payments: Optional[List[ImwebPayment]] = None
    sections: Optional[List[ImwebSection]] = None


class ImwebOrderPage(ImwebModel):
    orders: List[ImwebOrder] = Field(default_factory=list, alias="list")
    total_count: int = 0
    total_page: int = 1
    current_page: Optional[int] = None


class ImwebProduct(ImwebModel):
    prod_no: Optional[int] = None
    prod_code: Optional[str] = None
    prod_status: Optional[str] = None
    prod_type: Optional[str] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    event_words: Optional[str] = None
    review_count: Optional[int] = None
    is_badge_best: Optional[str] = None
    is_badge_hot: Optional[str] = None
    is_badge_new: Optional[str] = None
    simple_content: Optional[str] = None
    product_images: Optional[List[str]] = None
    categories: Optional[List[str]] = None


class ImwebSocialLogin(ImwebModel):
    kakao_id: Optional[str] = None
    naver_id: Optional[str] = None
    google_id: Optional[str] = None
    facebook_id: Optional[str] = None
    apple_id: Optional[str] = None
    line_id: Optional[str] = None


class ImwebMember(ImwebModel):
    member_uid: Optional[str] = None
    member_code: Optional[str] = None
    name: Optional[str] = None
    gender: Optional[str] = None
    birth: Optional[str] = None
    join_time: Optional[str] = None
    point: Optional[int] = None
    grade: Optional[str] = None
    sms_agree: Optional[str] = None
    email_agree: Optional[str] = None
    social_login: Optional[ImwebSocialLogin] = None


class ImwebCategory(ImwebModel):
    category_code: Optional[str] = None
    name: Optional[str] = None
    children: Optional[List["ImwebCategory"]] = None


class ImwebTokenResponse(ImwebModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = "Bearer"
    expires_in: Optional[int] = None
    refresh_token_expires_in: Optional[int] = None
    scope: Optional[List[str] | str] = None
