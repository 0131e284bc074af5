from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from db.base import Base

class SellerProfile(Base):
    """Seller account as seen by the payment core (managed by settings CRUD)"""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    plan_type = Column(String(50), nullable=True)  # 'starter', 'professional', 'enterprise'
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    files = relationship("ProtectedFile", back_populates="owner")
