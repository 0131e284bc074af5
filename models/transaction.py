from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, DECIMAL, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from db.base import Base

class TransactionStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    payment_link_id = Column(Integer, ForeignKey("payment_links.id"), nullable=False, index=True)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    # Pricing snapshot, immutable after creation
    base_amount = Column(DECIMAL(12, 2), nullable=False)
    base_currency = Column(String(10), nullable=False)
    converted_amount = Column(DECIMAL(12, 2), nullable=False)
    exchange_rate = Column(DECIMAL(18, 8), nullable=False)
    plan_tier = Column(String(50), nullable=False)
    fee_rate = Column(DECIMAL(5, 4), nullable=False)
    fee_amount = Column(DECIMAL(12, 2), nullable=False)
    charged_amount = Column(DECIMAL(12, 2), nullable=False)  # converted + fee
    charged_currency = Column(String(10), nullable=False)
    net_amount = Column(DECIMAL(12, 2), nullable=False)  # charged - fee

    external_reference = Column(String(255), unique=True, nullable=False, index=True)  # idempotency key
    gateway_tx_id = Column(String(255), nullable=True)
    payment_url = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING, index=True)
    failure_reason = Column(String(255), nullable=True)

    customer_email = Column(String(255), nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    # Set once, together with the link quota increment
    download_counted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    payment_link = relationship("PaymentLink", back_populates="transactions")
    file = relationship("ProtectedFile")
    grant = relationship("DownloadGrant", back_populates="transaction", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TransactionStatus.TERMINAL
