"""Combined order record built from Imweb order, product and member data."""

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Boolean, Text, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class SyncOrder(Base):
    """One row per (site_code, order_no)."""

    __tablename__ = "sync_orders"

    id = Column(Integer, primary_key=True, index=True)

    # Natural key
    site_code = Column(String(50), nullable=False)
    order_no = Column(BigInteger, nullable=False)  # Negative for operator-entered orders
    unit_code = Column(String(50), nullable=True)

    # Order header
    order_status = Column(String(50), nullable=True)
    order_type = Column(String(50), nullable=True)
    sale_channel = Column(String(50), nullable=True)
    device = Column(String(50), nullable=True)
    country = Column(String(10), nullable=True)
    currency = Column(String(10), nullable=True)
    total_price = Column(BigInteger, default=0, nullable=False)
    total_payment_price = Column(BigInteger, default=0, nullable=False)
    total_delivery_price = Column(BigInteger, default=0, nullable=False)
    total_discount_price = Column(BigInteger, default=0, nullable=False)
    orderer_name = Column(String(100), nullable=True)
    orderer_email = Column(String(255), nullable=True)
    orderer_call = Column(String(50), nullable=True)
    order_time = Column(DateTime(timezone=True), nullable=True, index=True)
    admin_url = Column(String(500), nullable=True)

    # Member snapshot
    is_member = Column(String(1), nullable=True)
    member_code = Column(String(100), nullable=True)
    member_uid = Column(String(255), nullable=True)
    member_gender = Column(String(10), nullable=True)
    member_birth = Column(String(20), nullable=True)
    member_join_time = Column(String(50), nullable=True)
    member_point = Column(Integer, nullable=True)
    member_grade = Column(String(50), nullable=True)
    member_social_login = Column(String(20), nullable=True)
    member_sms_agree = Column(String(1), nullable=True)
    member_email_agree = Column(String(1), nullable=True)

    # First payment
    payment_no = Column(String(100), nullable=True)
    payment_status = Column(String(50), nullable=True, index=True)
    payment_method = Column(String(50), nullable=True)
    pg_name = Column(String(50), nullable=True)
    paid_price = Column(BigInteger, default=0, nullable=False)
    payment_complete_time = Column(String(50), nullable=True)

    # First fulfillment section
    order_section_status = Column(String(50), nullable=True)
    delivery_type = Column(String(50), nullable=True)
    receiver_name = Column(String(100), nullable=True)
    receiver_call = Column(String(50), nullable=True)
    delivery_zipcode = Column(String(20), nullable=True)
    delivery_addr1 = Column(String(500), nullable=True)
    delivery_addr2 = Column(String(500), nullable=True)
    delivery_city = Column(String(100), nullable=True)
    delivery_state = Column(String(100), nullable=True)
    delivery_country = Column(String(100), nullable=True)
    delivery_memo = Column(Text, nullable=True)

    # First line item and product detail
    prod_no = Column(Integer, nullable=True, index=True)
    prod_name = Column(String(500), nullable=True)
    prod_code = Column(String(100), nullable=True)
    prod_status = Column(String(50), nullable=True)
    prod_type = Column(String(50), nullable=True)
    item_price = Column(BigInteger, default=0, nullable=False)
    item_qty = Column(Integer, default=1, nullable=False)
    prod_brand = Column(String(255), nullable=True)
    prod_event_words = Column(String(500), nullable=True)
    prod_review_count = Column(Integer, default=0, nullable=False)
    prod_is_badge_best = Column(String(1), nullable=True)
    prod_is_badge_hot = Column(String(1), nullable=True)
    prod_is_badge_new = Column(String(1), nullable=True)
    prod_simple_content = Column(Text, nullable=True)
    prod_image_url = Column(String(1000), nullable=True)

    # Raw structures
    option_info = Column(JSON, nullable=True)
    form_data = Column(JSON, nullable=True)
    all_products = Column(JSON, nullable=True)

    # Parsed order options
    opt_gender = Column(String(20), nullable=True)
    opt_birth_year = Column(String(4), nullable=True)
    opt_age = Column(Integer, nullable=True)
    opt_job = Column(String(255), nullable=True)
    opt_preferred_date = Column(String(255), nullable=True)
    order_event_date_dt = Column(DateTime, nullable=True, index=True)

    # Locally owned, never overwritten by a re-sync
    management_status = Column(String(50), nullable=False, index=True)
    carryover_round = Column(Integer, nullable=True)  # Only meaningful while deferred
    notification_sent = Column(Boolean, default=False, nullable=False)
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    last_realtime_check = Column(DateTime(timezone=True), nullable=True)
    is_manual_order = Column(Boolean, default=False, nullable=False)

    # Timestamps
    synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    status_history = relationship(
        "SyncOrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SyncOrderStatusHistory.id",
    )
    categories = relationship("SyncOrderCategory", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_sync_orders_site_order_no', 'site_code', 'order_no', unique=True),
        Index('idx_sync_orders_site_status', 'site_code', 'management_status'),
    )

    def __repr__(self):
        return f"<SyncOrder(id={self.id}, site='{self.site_code}', order_no={self.order_no}, status='{self.management_status}')>"
