from sqlalchemy import update
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
import logging

from models.download_grant import DownloadGrant
from utilities.timeutils import utcnow

logger = logging.getLogger(__name__)

def get_grant_by_transaction(db: Session, transaction_id: int) -> Optional[DownloadGrant]:
    """Get the download grant for a transaction"""
    return db.query(DownloadGrant).filter(DownloadGrant.transaction_id == transaction_id).first()

def upsert_grant(db: Session, transaction_id: int, token_id: str, url: str,
                 issued_at: datetime, expires_at: datetime) -> DownloadGrant:
    """Create the transaction's grant, or refresh it with a new token. Does not commit."""
    grant = get_grant_by_transaction(db, transaction_id)
    if grant is None:
        grant = DownloadGrant(transaction_id=transaction_id)
        db.add(grant)
    grant.token_id = token_id
    grant.url = url
    grant.issued_at = issued_at
    grant.expires_at = expires_at
    grant.consumed = False
    grant.consumed_at = None
    return grant

def consume_grant(db: Session, transaction_id: int, token_id: str) -> bool:
    """Mark the current, unused grant as consumed; False if it was already used or replaced"""
    try:
        result = db.execute(
            update(DownloadGrant)
            .where(
                DownloadGrant.transaction_id == transaction_id,
                DownloadGrant.token_id == token_id,
                DownloadGrant.consumed == False,  # noqa: E712
            )
            .values(consumed=True, consumed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    except Exception as e:
        logger.error(f"Error consuming grant for transaction {transaction_id}: {e}")
        db.rollback()
        raise e
