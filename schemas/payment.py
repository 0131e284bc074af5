from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional

class InitializePaymentIn(BaseModel):
    link_code: str = Field(..., min_length=1, max_length=64)
    currency: str = "USD"
    customer_email: EmailStr
    customer_name: str = Field(..., max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=50)
    # Client-generated idempotency key; resubmitting it replays the same transaction
    tx_ref: Optional[str] = Field(None, min_length=8, max_length=255)

    @field_validator("customer_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Please enter a valid full name")
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

class VerifyPaymentIn(BaseModel):
    tx_ref: str = Field(..., min_length=1, max_length=255)
