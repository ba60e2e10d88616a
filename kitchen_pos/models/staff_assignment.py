from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint, func

from kitchen_pos.core.database import Base


class StaffAssignment(Base):
    __tablename__ = "staff_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "revenue_center_id", name="uq_staff_assignments_user_center"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    revenue_center_id = Column(
        Integer,
        ForeignKey("revenue_centers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
