from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from kitchen_pos.core.database import Base


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint("total_orders >= 0", name="ck_customers_total_orders"),
        CheckConstraint("total_spent >= 0", name="ck_customers_total_spent"),
    )

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(160), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(40), nullable=True, index=True)

    # Derived from served orders; written only by services.customer_stats.
    total_orders = Column(Integer, nullable=False, default=0, server_default="0")
    total_spent = Column(Numeric(10, 2), nullable=False, default=0, server_default="0")
    last_order_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    restaurant = relationship("Restaurant", back_populates="customers")
    orders = relationship("Order", back_populates="customer")
