import asyncio
import logging
from datetime import timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from config.settings import settings
from core.errors import PaylinkError
from core.gateway import FlutterwaveGateway
from core.ledger import TransactionLedger
from db.session import SessionLocal

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None

# -------- Core reconciliation job --------

async def reconcile_pending(db: Session, gateway: FlutterwaveGateway) -> int:
    """Ask the gateway about stale pending transactions and settle what it knows.

    Returns how many transactions reached a terminal state.
    """
    ledger = TransactionLedger(db)
    pending = ledger.list_stale_pending(settings.RECON_MIN_AGE_SECONDS, settings.RECON_LOOKBACK_MINUTES)
    if not pending:
        return 0

    settled = 0
    for ref in [txn.external_reference for txn in pending]:
        event = await gateway.verify_by_reference(ref)
        if event is None:
            continue
        try:
            txn = ledger.settle_from_gateway(event)
        except PaylinkError as e:
            logger.warning("Recon could not settle %s: %s", ref, e.kind)
            continue
        if txn.is_terminal:
            settled += 1
            logger.info("Reconciliation settled %s as %s", ref, txn.status)
    return settled


def reconciliation_tick(gateway: FlutterwaveGateway = None):
    db = SessionLocal()
    try:
        settled = asyncio.run(reconcile_pending(db, gateway or FlutterwaveGateway()))
        if settled:
            logger.info("Reconciliation tick settled %d transactions", settled)
    except Exception as e:
        logger.warning("Reconciliation tick failed: %s", e)
    finally:
        db.close()


def start_reconciliation_scheduler() -> Optional[BackgroundScheduler]:
    global _scheduler
    if _scheduler is not None:
        return _scheduler
    if not settings.RECON_ENABLED:
        logger.info("Reconciliation disabled")
        return None
    try:
        sched = BackgroundScheduler(timezone=str(timezone.utc))
        sched.add_job(reconciliation_tick, 'interval', seconds=settings.RECON_INTERVAL_SECONDS,
                      id='pending-recon', max_instances=1, coalesce=True)
        sched.start()
        _scheduler = sched
        logger.info("Pending transaction reconciliation started: every %ss", settings.RECON_INTERVAL_SECONDS)
        return sched
    except Exception as e:
        logger.warning("Failed to start reconciliation scheduler: %s", e)
        return None


def shutdown_reconciliation_scheduler():
    global _scheduler
    try:
        if _scheduler:
            _scheduler.shutdown(wait=False)
            _scheduler = None
            logger.info("Reconciliation scheduler stopped")
    except Exception as e:
        logger.warning("Error stopping scheduler: %s", e)
