from sqlalchemy import Column, DateTime, String, func

from kitchen_pos.core.database import Base


class IdentityAccount(Base):
    """Login account owned by the built-in identity provider."""

    __tablename__ = "identity_accounts"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
