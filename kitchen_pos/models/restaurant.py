from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from kitchen_pos.core.database import Base

RESTAURANT_STATUSES = ("active", "inactive", "suspended")


class Restaurant(Base):
    __tablename__ = "restaurants"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive', 'suspended')", name="ck_restaurants_status"),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("kitchen_owners.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(160), nullable=False)
    address = Column(Text, nullable=True)
    phone_number = Column(String(40), nullable=True)
    domain_name = Column(String(120), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("KitchenOwner", back_populates="restaurants")
    revenue_centers = relationship("RevenueCenter", back_populates="restaurant", passive_deletes=True)
    customers = relationship("Customer", back_populates="restaurant", passive_deletes=True)
    orders = relationship("Order", back_populates="restaurant", passive_deletes=True)
