"""Store model for connected Imweb sites."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base


class Store(Base):
    """An Imweb site the service syncs orders for."""

    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    site_code = Column(String(50), nullable=False, unique=True, index=True)
    unit_code = Column(String(50), nullable=True)  # Required by every order/product query
    site_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Store(site_code='{self.site_code}', unit_code='{self.unit_code}', active={self.is_active})>"
