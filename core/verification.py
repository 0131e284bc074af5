"""Bounded re-verification of a transaction's settlement status.

The buyer lands back on the site before the gateway has necessarily told
us anything. ``VerificationController.verify`` re-reads the ledger a fixed
number of times with a fixed pause in between, asking the gateway by
reference on each pending read. It never marks a transaction failed on its
own: running out of attempts raises ``VerificationTimeout`` and leaves the
row pending for the webhook or the reconciliation sweep to settle.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.errors import InvalidTransition, TransactionNotFound, VerificationTimeout
from core.gateway import FlutterwaveGateway
from core.ledger import TransactionLedger
from models.transaction import Transaction, TransactionStatus

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 5
DEFAULT_DELAY_SECONDS = 3.0


class VerificationController:
    def __init__(
        self,
        ledger: TransactionLedger,
        gateway: Optional[FlutterwaveGateway] = None,
        attempts: int = DEFAULT_ATTEMPTS,
        delay: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.ledger = ledger
        self.gateway = gateway
        self.attempts = attempts
        self.delay = delay
        self._sleep = sleep

    async def verify(self, external_reference: str, cancel: Optional[asyncio.Event] = None) -> Transaction:
        for attempt in range(1, self.attempts + 1):
            if cancel is not None and cancel.is_set():
                logger.info("Verification of %s cancelled after %d attempts", external_reference, attempt - 1)
                raise VerificationTimeout(
                    "Verification cancelled",
                    external_reference=external_reference,
                    attempts=attempt - 1,
                    cancelled=True,
                )

            txn = await self._check(external_reference)
            if txn.is_terminal:
                logger.info("Verified %s as %s on attempt %d", external_reference, txn.status, attempt)
                return txn

            logger.debug("Transaction %s still pending (attempt %d/%d)", external_reference, attempt, self.attempts)
            if attempt < self.attempts:
                await self._sleep(self.delay)

        logger.warning("Verification of %s timed out after %d attempts", external_reference, self.attempts)
        raise VerificationTimeout(external_reference=external_reference, attempts=self.attempts)

    async def _check(self, external_reference: str) -> Transaction:
        txn = self.ledger.get_by_reference(external_reference)
        if txn is None:
            raise TransactionNotFound(external_reference=external_reference)
        if txn.status != TransactionStatus.PENDING or self.gateway is None:
            return txn

        event = await self.gateway.verify_by_reference(external_reference)
        if event is None or not (event.is_successful or event.is_failed):
            return txn

        try:
            return self.ledger.settle_from_gateway(event)
        except InvalidTransition:
            # Settled by another path in the meantime
            return self.ledger.get_by_reference(external_reference)
