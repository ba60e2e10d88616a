from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from kitchen_pos.core.database import Base

SUBSCRIPTION_PLANS = ("basic", "premium", "enterprise")


class KitchenOwner(Base):
    __tablename__ = "kitchen_owners"
    __table_args__ = (
        CheckConstraint(
            "subscription_plan IN ('basic', 'premium', 'enterprise')",
            name="ck_kitchen_owners_plan",
        ),
    )

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(160), nullable=False)
    subscription_plan = Column(String(20), nullable=False, default="basic")
    payment_id = Column(String(120), nullable=False)
    subscription_amount = Column(Numeric(10, 2), nullable=False)
    subscription_expires_at = Column(DateTime(timezone=True), nullable=False)
    is_setup_completed = Column(Boolean, nullable=False, default=False)
    # users.id once the login account is linked; no FK to keep the
    # kitchen_owners -> restaurants -> users chain acyclic.
    user_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    restaurants = relationship("Restaurant", back_populates="owner", passive_deletes=True)
