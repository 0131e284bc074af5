import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from config.settings import settings
from core.errors import DuplicateTransaction, UnsupportedCurrency
from core.gateway import FlutterwaveGateway, PaymentInitRequest
from core.ledger import CustomerInfo, TransactionLedger
from core.links import LinkResolver
from core.pricing import PricingEngine
from core.rates import is_supported
from models.transaction import Transaction, TransactionStatus

logger = logging.getLogger(__name__)


def generate_external_reference() -> str:
    return f"tx_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


@dataclass
class CheckoutResult:
    transaction: Transaction
    payment_url: Optional[str]
    replayed: bool = False


class CheckoutService:
    """Link redemption: resolve, price, record a pending transaction, open the gateway session.

    Re-submitting with the same external reference (double click, browser
    retry) replays the transaction that already exists instead of creating
    a second one.
    """

    def __init__(self, db: Session, pricing: PricingEngine, gateway: FlutterwaveGateway):
        self.resolver = LinkResolver(db)
        self.ledger = TransactionLedger(db)
        self.pricing = pricing
        self.gateway = gateway

    async def start(self, link_code: str, customer: CustomerInfo, currency: str,
                    external_reference: Optional[str] = None) -> CheckoutResult:
        currency = (currency or settings.BASE_CURRENCY).upper()
        if not is_supported(currency):
            raise UnsupportedCurrency(currency=currency)

        reference = external_reference or generate_external_reference()
        existing = self.ledger.get_by_reference(reference)
        if existing is not None:
            return await self._replay(existing, link_code)

        link = self.resolver.resolve(link_code)
        plan_tier = link.owner.plan_type if link.owner else None
        quote = await self.pricing.price(link.base_price, settings.BASE_CURRENCY, currency, plan_tier)

        txn, created = self.ledger.create_or_get(link, customer, quote, reference)
        if not created:
            return await self._replay(txn, link_code)

        logger.info(
            "Checkout started for link %s: %s %s (fee %s, rate %s) ref=%s",
            link_code, quote.total_amount, currency, quote.fee_amount, quote.exchange_rate, reference,
        )
        payment_url = await self._initialize(txn)
        return CheckoutResult(transaction=txn, payment_url=payment_url)

    async def _replay(self, txn: Transaction, link_code: str) -> CheckoutResult:
        if txn.payment_link.link_code != link_code:
            logger.warning("Reference %s reused for a different link", txn.external_reference)
            raise DuplicateTransaction(txn)

        payment_url = None
        if txn.status == TransactionStatus.PENDING:
            payment_url = txn.payment_url or await self._initialize(txn)
        logger.info("Replaying transaction %s (%s) for ref %s", txn.id, txn.status, txn.external_reference)
        return CheckoutResult(transaction=txn, payment_url=payment_url, replayed=True)

    async def _initialize(self, txn: Transaction) -> str:
        request = PaymentInitRequest(
            payment_link_id=txn.payment_link_id,
            file_id=txn.file_id,
            file_title=txn.file.title,
            amount=txn.charged_amount,
            currency=txn.charged_currency,
            base_amount=txn.base_amount,
            base_currency=txn.base_currency,
            platform_fee=txn.fee_amount,
            customer_email=txn.customer_email,
            customer_name=txn.customer_name,
            customer_phone=txn.customer_phone,
            external_reference=txn.external_reference,
        )
        # GatewayError propagates; the pending row stays and a retry with the
        # same reference re-initializes it
        payment_url = await self.gateway.initialize(request)
        self.ledger.attach_payment_url(txn.external_reference, payment_url)
        return payment_url
