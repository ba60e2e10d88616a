from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from kitchen_pos.core.database import Base

ORDER_ITEM_STATUSES = ("pending", "preparing", "ready", "served")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        # "Neither" is rejected at write time by the validator; it is allowed here
        # because deleting a catalog entry nulls the reference on historical rows.
        CheckConstraint(
            "NOT (menu_item_id IS NOT NULL AND combo_meal_id IS NOT NULL)",
            name="ck_order_items_single_reference",
        ),
        CheckConstraint(
            "status IN ('pending', 'preparing', 'ready', 'served')",
            name="ck_order_items_status",
        ),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    revenue_center_id = Column(Integer, ForeignKey("revenue_centers.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True, index=True)
    combo_meal_id = Column(Integer, ForeignKey("combo_meals.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot taken when the line is written; survives catalog edits and deletes.
    item_name = Column(String(160), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    special_instructions = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")
