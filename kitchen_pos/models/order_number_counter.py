from sqlalchemy import Column, Date, ForeignKey, Integer

from kitchen_pos.core.database import Base


class OrderNumberCounter(Base):
    """Per-restaurant, per-day row locked while an order number is assigned."""

    __tablename__ = "order_number_counters"

    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), primary_key=True)
    business_date = Column(Date, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
