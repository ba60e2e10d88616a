from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, func

from kitchen_pos.core.database import Base

USER_ROLES = ("super_admin", "kitchen_owner", "manager", "staff")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('super_admin', 'kitchen_owner', 'manager', 'staff')",
            name="ck_users_role",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String(64), nullable=True, unique=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(160), nullable=False)
    role = Column(String(20), nullable=False, default="staff")
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
