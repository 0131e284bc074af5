import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.errors import DuplicateTransaction, InvalidTransition, TransactionNotFound
from core.gateway import GatewayEvent
from core.pricing import Quote
from crud.transaction import (
    get_stale_pending_transactions,
    get_transaction_by_id,
    get_transaction_by_reference,
    insert_transaction,
    set_payment_url,
    transition_status,
)
from models.payment_link import PaymentLink
from models.transaction import Transaction, TransactionStatus
from utilities.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None


class TransactionLedger:
    """Owns transaction rows and their status transitions.

    State machine: pending -> completed, pending -> failed. Both targets are
    terminal. Every transition is one conditional UPDATE on the pending row,
    so concurrent webhook deliveries and verification polls cannot both win.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: int) -> Optional[Transaction]:
        return get_transaction_by_id(self.db, transaction_id)

    def get_by_reference(self, external_reference: str) -> Optional[Transaction]:
        return get_transaction_by_reference(self.db, external_reference)

    def create_pending(self, link: PaymentLink, customer: CustomerInfo, quote: Quote,
                       external_reference: str) -> Transaction:
        """Insert a pending transaction; raises DuplicateTransaction on a reused reference.

        The unique constraint on ``external_reference`` is the guard; the
        lookup beforehand only avoids a pointless failed INSERT.
        """
        existing = self.get_by_reference(external_reference)
        if existing is not None:
            raise DuplicateTransaction(existing)

        try:
            return insert_transaction(
                self.db,
                payment_link_id=link.id,
                file_id=link.file_id,
                owner_id=link.owner_id,
                base_amount=quote.base_amount,
                base_currency=quote.base_currency,
                converted_amount=quote.converted_amount,
                exchange_rate=quote.exchange_rate,
                plan_tier=quote.plan_tier,
                fee_rate=quote.fee_rate,
                fee_amount=quote.fee_amount,
                charged_amount=quote.total_amount,
                charged_currency=quote.currency,
                net_amount=quote.net_amount,
                external_reference=external_reference,
                customer_email=customer.email.strip(),
                customer_name=customer.name,
                customer_phone=customer.phone,
            )
        except IntegrityError:
            existing = self.get_by_reference(external_reference)
            if existing is None:
                raise
            logger.info("Concurrent create for %s collapsed onto transaction %s",
                        external_reference, existing.id)
            raise DuplicateTransaction(existing)

    def create_or_get(self, link: PaymentLink, customer: CustomerInfo, quote: Quote,
                      external_reference: str) -> Tuple[Transaction, bool]:
        """Like create_pending, but a duplicate hands back the existing row"""
        try:
            return self.create_pending(link, customer, quote, external_reference), True
        except DuplicateTransaction as dup:
            return dup.existing, False

    def mark_completed(self, external_reference: str, gateway_tx_id: Optional[str] = None) -> Transaction:
        return self._transition(external_reference, TransactionStatus.COMPLETED,
                                gateway_tx_id=gateway_tx_id)

    def mark_failed(self, external_reference: str, reason: Optional[str] = None) -> Transaction:
        return self._transition(external_reference, TransactionStatus.FAILED,
                                failure_reason=(reason or "")[:255] or None)

    def _transition(self, external_reference: str, to_status: str, **fields) -> Transaction:
        moved = transition_status(self.db, external_reference, to_status, **fields)
        txn = self.get_by_reference(external_reference)
        if txn is None:
            raise TransactionNotFound(external_reference=external_reference)

        if moved:
            logger.info("Transaction %s (%s) -> %s", txn.id, external_reference, to_status)
            return txn
        if txn.status == to_status:
            logger.info("Transaction %s already %s; ignoring repeat transition", txn.id, to_status)
            return txn

        logger.warning("Refusing %s -> %s for transaction %s", txn.status, to_status, txn.id)
        raise InvalidTransition(external_reference=external_reference,
                                current=txn.status, requested=to_status)

    def settle_from_gateway(self, event: GatewayEvent) -> Transaction:
        """Apply a gateway-reported outcome (webhook, verify or reconciliation)"""
        txn = self.get_by_reference(event.external_reference)
        if txn is None:
            raise TransactionNotFound(external_reference=event.external_reference)

        if event.is_successful:
            if txn.status == TransactionStatus.PENDING and not self._amount_matches(txn, event):
                logger.error(
                    "Gateway amount mismatch for %s: got %s %s, expected %s %s",
                    txn.external_reference, event.amount, event.currency,
                    txn.charged_amount, txn.charged_currency,
                )
                return self.mark_failed(txn.external_reference, "amount_mismatch")
            return self.mark_completed(txn.external_reference, event.gateway_tx_id)

        if event.is_failed:
            return self.mark_failed(txn.external_reference, f"gateway_{event.outcome}")

        logger.info("Gateway reports %s for %s; leaving pending", event.outcome, txn.external_reference)
        return txn

    @staticmethod
    def _amount_matches(txn: Transaction, event: GatewayEvent) -> bool:
        if event.currency and event.currency.upper() != txn.charged_currency:
            return False
        if event.amount is not None and event.amount < txn.charged_amount:
            return False
        return True

    def attach_payment_url(self, external_reference: str, payment_url: str) -> None:
        set_payment_url(self.db, external_reference, payment_url)

    def list_stale_pending(self, min_age_seconds: int, lookback_minutes: int) -> List[Transaction]:
        now = utcnow()
        return get_stale_pending_transactions(
            self.db,
            created_before=now - timedelta(seconds=min_age_seconds),
            created_after=now - timedelta(minutes=lookback_minutes),
        )
