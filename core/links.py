import logging
from datetime import datetime
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from core.errors import LinkExhausted, LinkExpired, LinkNotFound
from crud.payment_link import get_active_link_by_code
from models.payment_link import PaymentLink
from utilities.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


class LinkResolver:
    """Loads a payment link by code and checks it can still be redeemed.

    Checks run in order (not found, expired, exhausted) and the first failure
    wins. Resolving never touches the quota; that only happens when a paid
    transaction is granted its download.
    """

    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow):
        self.db = db
        self._now = now

    def resolve(self, code: str) -> PaymentLink:
        link = get_active_link_by_code(self.db, code) if code else None
        if link is None or link.file is None or not link.file.is_active:
            logger.info("Payment link %s not found or inactive", code)
            raise LinkNotFound(link_code=code)

        expires_at = as_utc(link.expires_at)
        if expires_at is not None and expires_at < self._now():
            logger.info("Payment link %s expired at %s", code, expires_at.isoformat())
            raise LinkExpired(link_code=code)

        if link.current_downloads >= link.max_downloads:
            logger.info("Payment link %s exhausted (%s/%s)", code, link.current_downloads, link.max_downloads)
            raise LinkExhausted(link_code=code)

        return link

    @staticmethod
    def describe(link: PaymentLink) -> Dict[str, Any]:
        file = link.file
        expires_at = as_utc(link.expires_at)
        return {
            "id": link.id,
            "link_code": link.link_code,
            "custom_message": link.custom_message,
            "price": str(link.base_price),
            "currency": "USD",
            "expires_at": expires_at.isoformat() if expires_at else None,
            "max_downloads": link.max_downloads,
            "current_downloads": link.current_downloads,
            "downloads_left": link.downloads_left,
            "file": {
                "id": file.id,
                "title": file.title,
                "description": file.description,
                "price": str(file.price),
                "file_size": file.file_size,
                "file_type": file.file_type,
            },
        }
