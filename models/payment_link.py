from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, DECIMAL, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from db.base import Base

class PaymentLink(Base):
    __tablename__ = "payment_links"
    __table_args__ = (
        CheckConstraint("max_downloads >= 1", name="ck_payment_links_max_downloads"),
        CheckConstraint(
            "current_downloads >= 0 AND current_downloads <= max_downloads",
            name="ck_payment_links_quota",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    link_code = Column(String(64), unique=True, nullable=False, index=True)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    custom_price = Column(DECIMAL(12, 2), nullable=True)  # USD, overrides file price
    custom_message = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_downloads = Column(Integer, nullable=False, default=1)
    # Only ever incremented by the download grant issuer's conditional UPDATE
    current_downloads = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    file = relationship("ProtectedFile", back_populates="payment_links")
    owner = relationship("SellerProfile")
    transactions = relationship("Transaction", back_populates="payment_link")

    @property
    def base_price(self):
        return self.custom_price if self.custom_price is not None else self.file.price

    @property
    def downloads_left(self) -> int:
        return max(0, self.max_downloads - self.current_downloads)
