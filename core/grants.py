import logging
import secrets
from datetime import timedelta
from typing import Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from core.errors import (
    GrantConsumed,
    GrantInvalid,
    GrantNotCompleted,
    GrantUnauthorized,
    QuotaExceeded,
    TransactionNotFound,
)
from crud.download_grant import consume_grant, get_grant_by_transaction, upsert_grant
from crud.payment_link import increment_downloads
from crud.transaction import claim_download_count, get_transaction_by_id
from models.download_grant import DownloadGrant
from models.file import ProtectedFile
from models.transaction import Transaction, TransactionStatus
from utilities.jwt import create_download_token, verify_download_token
from utilities.timeutils import utcnow

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class DownloadGrantIssuer:
    """Issues short-lived download grants for completed transactions.

    The first grant for a transaction counts one download against the link
    quota. The per-transaction ``download_counted`` marker and the link's
    conditional increment are written in the same database transaction, so a
    purchase is counted at most once and the link never goes over quota.
    Later requests only refresh the grant.
    """

    def __init__(self, db: Session, ttl_seconds: int = None, base_url: str = None):
        self.db = db
        self.ttl_seconds = ttl_seconds or settings.DOWNLOAD_GRANT_TTL_SECONDS
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def issue(self, transaction_id: int, customer_email: str) -> DownloadGrant:
        txn = get_transaction_by_id(self.db, transaction_id)
        if txn is None:
            raise TransactionNotFound(transaction_id=transaction_id)
        if _normalize_email(customer_email) != _normalize_email(txn.customer_email):
            logger.warning("Download requested for transaction %s with non-matching email", txn.id)
            raise GrantUnauthorized(transaction_id=txn.id)
        if txn.status != TransactionStatus.COMPLETED:
            raise GrantNotCompleted(transaction_id=txn.id, status=txn.status)

        if not txn.download_counted:
            self._count_download(txn)

        return self._mint(txn)

    def _count_download(self, txn: Transaction) -> None:
        try:
            claimed = claim_download_count(self.db, txn.id)
            if claimed and not increment_downloads(self.db, txn.payment_link_id):
                self.db.rollback()
                logger.error(
                    "QUOTA EXCEEDED for paid transaction %s (ref=%s, link=%s): needs support follow-up",
                    txn.id, txn.external_reference, txn.payment_link_id,
                )
                raise QuotaExceeded(transaction_id=txn.id)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if claimed:
            logger.info("Counted download for transaction %s against link %s", txn.id, txn.payment_link_id)

    def _mint(self, txn: Transaction) -> DownloadGrant:
        issued_at = utcnow()
        expires_at = issued_at + timedelta(seconds=self.ttl_seconds)
        token_id = secrets.token_hex(16)
        token = create_download_token(txn.id, txn.file_id, token_id, expires_at)
        url = f"{self.base_url}/api/downloads/{token}"

        for _ in range(2):
            try:
                grant = upsert_grant(self.db, txn.id, token_id, url, issued_at, expires_at)
                self.db.commit()
                self.db.refresh(grant)
                logger.info("Issued download grant for transaction %s (expires %s)", txn.id, expires_at.isoformat())
                return grant
            except IntegrityError:
                # Another request created the row first; update it instead
                self.db.rollback()
        raise RuntimeError(f"Could not store download grant for transaction {txn.id}")

    def authorize(self, token: str) -> Tuple[DownloadGrant, ProtectedFile]:
        """Check a grant token without using it up"""
        claims = verify_download_token(token)
        if not claims:
            raise GrantInvalid()

        transaction_id = int(claims["sub"])
        grant = get_grant_by_transaction(self.db, transaction_id)
        if grant is None or grant.token_id != claims.get("jti"):
            raise GrantInvalid()
        if grant.consumed:
            raise GrantConsumed()

        txn = get_transaction_by_id(self.db, transaction_id)
        return grant, txn.file

    def consume(self, grant: DownloadGrant) -> DownloadGrant:
        if not consume_grant(self.db, grant.transaction_id, grant.token_id):
            raise GrantConsumed()
        self.db.refresh(grant)
        return grant

    def redeem(self, token: str) -> Tuple[DownloadGrant, ProtectedFile]:
        """Consume a grant token; each token authorizes a single download"""
        grant, file = self.authorize(token)
        return self.consume(grant), file
