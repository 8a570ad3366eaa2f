"""Shop categories and their links to synced orders."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class SyncCategory(Base):
    """Imweb shop category, flattened with its parent code."""

    __tablename__ = "sync_categories"

    id = Column(Integer, primary_key=True, index=True)
    site_code = Column(String(50), nullable=False)
    category_code = Column(String(100), nullable=False)
    name = Column(String(255), nullable=True)
    parent_code = Column(String(100), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_sync_categories_site_code', 'site_code', 'category_code', unique=True),
    )

    def __repr__(self):
        return f"<SyncCategory(site='{self.site_code}', code='{self.category_code}', name='{self.name}')>"


class SyncOrderCategory(Base):
    """Category codes of every product in an order."""

    __tablename__ = "sync_order_categories"

    id = Column(Integer, primary_key=True, index=True)
    sync_order_id = Column(Integer, ForeignKey("sync_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    site_code = Column(String(50), nullable=False, index=True)
    category_code = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("SyncOrder", back_populates="categories")
