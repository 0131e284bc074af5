from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal

class QuoteResponse(BaseModel):
    base_amount: Decimal
    base_currency: str
    exchange_rate: Decimal
    converted_amount: Decimal
    plan_tier: str
    fee_amount: Decimal
    total_amount: Decimal
    currency: str

class TransactionResponse(BaseModel):
    id: int
    external_reference: str
    status: str
    payment_link_id: int
    file_id: int
    base_amount: Decimal
    base_currency: str
    charged_amount: Decimal
    charged_currency: str
    exchange_rate: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    customer_email: str
    customer_name: Optional[str]
    failure_reason: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True
