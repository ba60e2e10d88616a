from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from kitchen_pos.core.database import Base

ORDER_TYPES = ("dine_in", "takeaway", "delivery")
ORDER_STATUSES = ("pending", "preparing", "ready", "served", "cancelled")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "order_number", name="uq_orders_restaurant_order_number"),
        CheckConstraint("type IN ('dine_in', 'takeaway', 'delivery')", name="ck_orders_type"),
        CheckConstraint(
            "status IN ('pending', 'preparing', 'ready', 'served', 'cancelled')",
            name="ck_orders_status",
        ),
        # Numeric is exact on PostgreSQL; the tolerance keeps SQLite's REAL storage honest.
        CheckConstraint(
            "abs(total_amount - (subtotal + tax_amount - discount_amount)) < 0.005",
            name="ck_orders_total_balance",
        ),
    )

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)

    order_number = Column(String(32), nullable=False)
    business_date = Column(Date, nullable=False, index=True)
    type = Column(String(20), nullable=False, default="dine_in")
    status = Column(String(20), nullable=False, default="pending")
    table_number = Column(String(20), nullable=True)
    delivery_location = Column(Text, nullable=True)

    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    restaurant = relationship("Restaurant", back_populates="orders")
    customer = relationship("Customer", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Payment.id",
    )
