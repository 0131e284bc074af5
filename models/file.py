from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, BigInteger, DECIMAL
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from db.base import Base

class ProtectedFile(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(DECIMAL(12, 2), nullable=False)  # USD
    file_size = Column(BigInteger, nullable=False, default=0)  # bytes
    file_type = Column(String(100), nullable=False)
    file_path = Column(Text, nullable=False)  # storage key
    original_filename = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    owner = relationship("SellerProfile", back_populates="files")
    payment_links = relationship("PaymentLink", back_populates="file")

    @property
    def download_name(self) -> str:
        return self.original_filename or self.title
