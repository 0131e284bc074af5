from sqlalchemy import update
from sqlalchemy.orm import Session
from typing import Optional, List
from datetime import datetime
import logging

from models.transaction import Transaction, TransactionStatus
from utilities.timeutils import utcnow

logger = logging.getLogger(__name__)

def get_transaction_by_id(db: Session, transaction_id: int) -> Optional[Transaction]:
    """Get transaction by ID"""
    return db.query(Transaction).populate_existing().filter(Transaction.id == transaction_id).first()

def get_transaction_by_reference(db: Session, external_reference: str) -> Optional[Transaction]:
    """Get transaction by its unique external reference"""
    return (
        db.query(Transaction)
        .populate_existing()
        .filter(Transaction.external_reference == external_reference)
        .first()
    )

def get_stale_pending_transactions(db: Session, created_before: datetime, created_after: datetime) -> List[Transaction]:
    """Pending transactions created inside [created_after, created_before]"""
    return (
        db.query(Transaction)
        .filter(Transaction.status == TransactionStatus.PENDING)
        .filter(Transaction.created_at <= created_before)
        .filter(Transaction.created_at >= created_after)
        .order_by(Transaction.created_at)
        .all()
    )

def insert_transaction(db: Session, **fields) -> Transaction:
    """Insert a pending transaction; IntegrityError propagates after rollback"""
    try:
        db_transaction = Transaction(status=TransactionStatus.PENDING, **fields)
        db.add(db_transaction)
        db.commit()
        db.refresh(db_transaction)

        logger.info(f"Created new transaction: {db_transaction.id} ref={db_transaction.external_reference}")
        return db_transaction

    except Exception as e:
        db.rollback()
        raise e

def transition_status(db: Session, external_reference: str, to_status: str, **fields) -> bool:
    """Move a pending transaction to ``to_status`` in one conditional UPDATE.

    Returns False when no pending row matched (unknown or already settled).
    """
    try:
        result = db.execute(
            update(Transaction)
            .where(
                Transaction.external_reference == external_reference,
                Transaction.status == TransactionStatus.PENDING,
            )
            .values(status=to_status, updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    except Exception as e:
        logger.error(f"Error transitioning transaction {external_reference}: {e}")
        db.rollback()
        raise e

def set_payment_url(db: Session, external_reference: str, payment_url: str) -> None:
    """Remember the hosted checkout URL so replays can reuse it"""
    try:
        db.execute(
            update(Transaction)
            .where(Transaction.external_reference == external_reference)
            .values(payment_url=payment_url)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception as e:
        logger.error(f"Error saving payment url for {external_reference}: {e}")
        db.rollback()
        raise e

def claim_download_count(db: Session, transaction_id: int) -> bool:
    """Flip the per-transaction 'already counted' marker. Does not commit."""
    result = db.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.download_counted == False)  # noqa: E712
        .values(download_counted=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
