from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload
from typing import Optional
import logging
import secrets
import string

from models.payment_link import PaymentLink

logger = logging.getLogger(__name__)

LINK_CODE_ALPHABET = string.ascii_lowercase + string.digits
LINK_CODE_LENGTH = 10

def generate_link_code(length: int = LINK_CODE_LENGTH) -> str:
    """Opaque, URL-safe link code (the /pay/<code> segment)"""
    return "".join(secrets.choice(LINK_CODE_ALPHABET) for _ in range(length))

def get_link_by_id(db: Session, link_id: int) -> Optional[PaymentLink]:
    """Get payment link by ID"""
    return db.query(PaymentLink).filter(PaymentLink.id == link_id).first()

def get_active_link_by_code(db: Session, link_code: str) -> Optional[PaymentLink]:
    """Get an active payment link (with its file) by code"""
    return (
        db.query(PaymentLink)
        .options(joinedload(PaymentLink.file))
        .filter(PaymentLink.link_code == link_code, PaymentLink.is_active == True)  # noqa: E712
        .first()
    )

def create_payment_link(db: Session, file, max_downloads: int = 1, custom_price=None,
                        custom_message: str = None, expires_at=None, link_code: str = None) -> PaymentLink:
    """Create a payment link for a file (owner dashboard / seeding)"""
    try:
        link = PaymentLink(
            link_code=link_code or generate_link_code(),
            file_id=file.id,
            owner_id=file.owner_id,
            custom_price=custom_price,
            custom_message=custom_message,
            expires_at=expires_at,
            max_downloads=max_downloads,
            current_downloads=0,
            is_active=True,
        )
        db.add(link)
        db.commit()
        db.refresh(link)

        logger.info(f"Created payment link {link.link_code} for file {file.id}")
        return link

    except Exception as e:
        logger.error(f"Error creating payment link: {e}")
        db.rollback()
        raise e

def increment_downloads(db: Session, link_id: int) -> bool:
    """Conditionally count one download against the link quota.

    Single UPDATE guarded by ``current_downloads < max_downloads``; returns
    False when the quota is already used up. Does not commit.
    """
    result = db.execute(
        update(PaymentLink)
        .where(PaymentLink.id == link_id, PaymentLink.current_downloads < PaymentLink.max_downloads)
        .values(current_downloads=PaymentLink.current_downloads + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
