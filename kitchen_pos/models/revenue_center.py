from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from kitchen_pos.core.database import Base

REVENUE_CENTER_TYPES = ("restaurant", "bar", "patio", "takeout")


class RevenueCenter(Base):
    __tablename__ = "revenue_centers"
    __table_args__ = (
        CheckConstraint("type IN ('restaurant', 'bar', 'patio', 'takeout')", name="ck_revenue_centers_type"),
    )

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    type = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    restaurant = relationship("Restaurant", back_populates="revenue_centers")
    business_hours = relationship(
        "BusinessHours",
        back_populates="revenue_center",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BusinessHours.day_of_week",
    )
