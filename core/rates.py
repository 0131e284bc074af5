import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

import httpx

from config.settings import settings

logger = logging.getLogger(__name__)

RATE_PLACES = Decimal("0.00000001")

# USD-relative rates used when no live table has ever been fetched
FALLBACK_RATES: Dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.85,
    "GBP": 0.73,
    "NGN": 411.0,
    "GHS": 5.8,
    "KES": 110.0,
    "ZAR": 15.2,
    "CAD": 1.25,
    "AUD": 1.35,
}

SUPPORTED_CURRENCIES: List[Dict[str, str]] = [
    {"code": "USD", "name": "US Dollar", "symbol": "$"},
    {"code": "EUR", "name": "Euro", "symbol": "€"},
    {"code": "GBP", "name": "British Pound", "symbol": "£"},
    {"code": "NGN", "name": "Nigerian Naira", "symbol": "₦"},
    {"code": "GHS", "name": "Ghanaian Cedi", "symbol": "₵"},
    {"code": "KES", "name": "Kenyan Shilling", "symbol": "KSh"},
    {"code": "ZAR", "name": "South African Rand", "symbol": "R"},
    {"code": "CAD", "name": "Canadian Dollar", "symbol": "C$"},
    {"code": "AUD", "name": "Australian Dollar", "symbol": "A$"},
]

RateFetcher = Callable[[], Awaitable[Mapping[str, float]]]


def is_supported(code: str) -> bool:
    return any(c["code"] == code for c in SUPPORTED_CURRENCIES)


def format_amount(amount, code: str) -> str:
    """Format an amount with its currency symbol, e.g. ``€42.50``"""
    symbol = next((c["symbol"] for c in SUPPORTED_CURRENCIES if c["code"] == code), code)
    return f"{symbol}{Decimal(str(amount)):.2f}"


def _positive_rate(value) -> Optional[Decimal]:
    """Parse a table entry; None unless it is a positive finite number"""
    if isinstance(value, bool):
        return None
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not rate.is_finite() or rate <= 0:
        return None
    return rate


@dataclass(frozen=True)
class RateSnapshot:
    """USD-relative rate table plus when (and from where) it was obtained"""
    rates: Mapping[str, float]
    fetched_at: float
    source: str = "live"  # 'live', 'stale' or 'fallback'

    def lookup(self, code: str, fallback_rates: Mapping[str, float] = FALLBACK_RATES) -> Decimal:
        for table in (self.rates, fallback_rates):
            rate = _positive_rate(table.get(code))
            if rate is not None:
                return rate
        return Decimal("1")


async def fetch_usd_rates(client: Optional[httpx.AsyncClient] = None) -> Dict[str, float]:
    """Fetch the live USD-based table from the configured rates API.

    Entries that are not positive numbers are dropped; a table with nothing
    usable left is rejected.
    """
    async def _get(c: httpx.AsyncClient) -> httpx.Response:
        return await c.get(settings.RATES_API_URL, headers={"Accept": "application/json"})

    if client is None:
        async with httpx.AsyncClient(timeout=10) as c:
            response = await _get(c)
    else:
        response = await _get(client)

    response.raise_for_status()
    data = response.json()
    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict) or not rates:
        raise ValueError("Invalid rates API response format")

    usable = {code: value for code, value in rates.items() if _positive_rate(value) is not None}
    dropped = set(rates) - set(usable)
    if dropped:
        logger.warning("Ignoring malformed exchange rates for %s", ", ".join(sorted(map(str, dropped))))
    if not usable.keys() - {"USD"}:
        raise ValueError("Rates API returned no usable rates")
    return {**usable, "USD": 1.0}


class RateCache:
    """Exchange rate table with a freshness window.

    The whole table and its timestamp live in a single immutable
    ``RateSnapshot`` that is swapped in one assignment, so concurrent readers
    never see a half-updated table. Racing refreshes are last-writer-wins.
    Fetch failures never reach the caller: an expired snapshot is served if
    one exists, otherwise the ``fallback_rates`` table. After a failure the
    live API is not asked again for ``retry_seconds``.
    """

    def __init__(
        self,
        fetch: RateFetcher = fetch_usd_rates,
        ttl_seconds: float = 3600,
        fallback_rates: Mapping[str, float] = FALLBACK_RATES,
        clock: Callable[[], float] = time.monotonic,
        retry_seconds: float = 60,
    ):
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self.fallback_rates = dict(fallback_rates)
        self.retry_seconds = retry_seconds
        self._clock = clock
        self._snapshot: Optional[RateSnapshot] = None
        self._retry_at: Optional[float] = None

    @property
    def snapshot(self) -> Optional[RateSnapshot]:
        return self._snapshot

    def is_fresh(self) -> bool:
        snap = self._snapshot
        return snap is not None and (self._clock() - snap.fetched_at) < self.ttl_seconds

    async def table(self) -> RateSnapshot:
        snap = self._snapshot
        now = self._clock()
        if snap is not None and (now - snap.fetched_at) < self.ttl_seconds:
            return snap
        if self._retry_at is not None and now < self._retry_at:
            return self._degraded(snap)

        try:
            rates = await self._fetch()
            if not rates:
                raise ValueError("empty rate table")
            fresh = RateSnapshot(rates=dict(rates), fetched_at=self._clock(), source="live")
            self._snapshot = fresh
            self._retry_at = None
            logger.info("Exchange rates refreshed (%d currencies)", len(fresh.rates))
            return fresh
        except Exception as e:
            logger.error("Failed to fetch live exchange rates: %s", e)

        self._retry_at = self._clock() + self.retry_seconds
        return self._degraded(snap)

    def _degraded(self, snap: Optional[RateSnapshot]) -> RateSnapshot:
        if snap is not None:
            logger.warning("Using expired cached exchange rates")
            return RateSnapshot(rates=snap.rates, fetched_at=snap.fetched_at, source="stale")

        logger.warning("No cached exchange rates; using static fallback table")
        return RateSnapshot(rates=self.fallback_rates, fetched_at=self._clock(), source="fallback")

    async def rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Cross rate ``to / from`` from the USD-based table"""
        if from_currency == to_currency:
            return Decimal("1")
        snap = await self.table()
        to_rate = snap.lookup(to_currency, self.fallback_rates)
        from_rate = snap.lookup(from_currency, self.fallback_rates)
        return (to_rate / from_rate).quantize(RATE_PLACES)

    def clear(self):
        self._snapshot = None
        self._retry_at = None
