import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from core.rates import RateCache

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

FEE_RATES: Dict[str, Decimal] = {
    "starter": Decimal("0.05"),
    "professional": Decimal("0.03"),
    "enterprise": Decimal("0.01"),
}
DEFAULT_PLAN = "professional"  # sellers without a plan on record
UNKNOWN_PLAN_FEE = FEE_RATES["starter"]


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to cents, half-up (1.275 -> 1.28)"""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def fee_rate(plan_tier: Optional[str]) -> Decimal:
    return FEE_RATES.get(plan_tier or DEFAULT_PLAN, UNKNOWN_PLAN_FEE)


def fee(amount, plan_tier: Optional[str]) -> Decimal:
    return round_money(to_decimal(amount) * fee_rate(plan_tier))


def convert(amount, from_currency: str, to_currency: str, rate) -> Decimal:
    amount = to_decimal(amount)
    if from_currency == to_currency:
        return amount
    return round_money(amount * to_decimal(rate))


@dataclass(frozen=True)
class Quote:
    base_amount: Decimal
    base_currency: str
    currency: str
    exchange_rate: Decimal
    converted_amount: Decimal
    plan_tier: str
    fee_rate: Decimal
    fee_amount: Decimal
    total_amount: Decimal

    @property
    def net_amount(self) -> Decimal:
        return self.total_amount - self.fee_amount

    def to_dict(self) -> Dict[str, str]:
        data = {k: str(v) for k, v in asdict(self).items()}
        data["net_amount"] = str(self.net_amount)
        return data


def compute_price(base_amount, base_currency: str, target_currency: str,
                  plan_tier: Optional[str], rate) -> Quote:
    """Price a sale from a fixed rate; the rate is returned for persistence."""
    tier = plan_tier or DEFAULT_PLAN
    rate = to_decimal(rate)
    converted = round_money(convert(base_amount, base_currency, target_currency, rate))
    fee_amount = fee(converted, tier)
    return Quote(
        base_amount=round_money(base_amount),
        base_currency=base_currency,
        currency=target_currency,
        exchange_rate=rate,
        converted_amount=converted,
        plan_tier=tier,
        fee_rate=fee_rate(tier),
        fee_amount=fee_amount,
        total_amount=converted + fee_amount,
    )


class PricingEngine:
    def __init__(self, rate_cache: RateCache):
        self.rate_cache = rate_cache

    async def price(self, base_amount, base_currency: str, target_currency: str,
                    plan_tier: Optional[str]) -> Quote:
        rate = await self.rate_cache.rate(base_currency, target_currency)
        quote = compute_price(base_amount, base_currency, target_currency, plan_tier, rate)
        logger.debug("Priced %s %s -> %s %s (rate=%s tier=%s)",
                     quote.base_amount, base_currency, quote.total_amount,
                     target_currency, rate, quote.plan_tier)
        return quote
