"""
RQ Jobs - Escrow and negotiation sweeps

Each sweep commits per item, so a partial run leaves consistent state and the
next run picks up the rest.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from eventswap.core.common.clock import utcnow
from eventswap.core.offers.models import Offer, OfferStatus
from eventswap.core.transactions.models import Transaction, TransactionStatus
from eventswap.infrastructure.database import SessionLocal
from eventswap.infrastructure.logging_config import trace_id_context
from eventswap.services.escrow.service import auto_complete_transfers, expire_unpaid_transactions
from eventswap.services.offers.service import expire_stale_offers

logger = logging.getLogger(__name__)

QUEUE_NAME = "sweeps"

SWEEPS: Dict[str, Callable[..., int]] = {
    "expire_offers": expire_stale_offers,
    "expire_unpaid_transactions": expire_unpaid_transactions,
    "auto_complete_transfers": auto_complete_transfers,
}


def due_counts(db: Session, now: datetime) -> Dict[str, int]:
    """How many rows each sweep would touch at `now` (no writes)"""
    return {
        "expire_offers": db.execute(
            select(func.count(Offer.id)).where(Offer.status == OfferStatus.PENDING, Offer.expires_at <= now)
        ).scalar_one(),
        "expire_unpaid_transactions": db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.status == TransactionStatus.AWAITING_PAYMENT,
                Transaction.payment_deadline < now,
            )
        ).scalar_one(),
        "auto_complete_transfers": db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.status == TransactionStatus.TRANSFERRING,
                Transaction.transfer_deadline < now,
            )
        ).scalar_one(),
    }


def run_sweeps(db: Session, now: Optional[datetime] = None, limit: int = 200) -> Dict[str, int]:
    """Run every sweep once; returns processed counts keyed by sweep name"""
    now = now or utcnow()
    return {name: sweep(db=db, now=now, limit=limit) for name, sweep in SWEEPS.items()}


def run_sweep_job(name: str, limit: int = 200) -> int:
    """RQ entry point for a single sweep"""
    sweep = SWEEPS[name]
    token = trace_id_context.set(f"job-{name.replace('_', '-')}-{str(uuid4())[:8]}")
    db = SessionLocal()
    try:
        processed = sweep(db=db, limit=limit)
        logger.info("Sweep finished", extra={"sweep": name, "processed": processed})
        return processed
    finally:
        db.close()
        trace_id_context.reset(token)


def enqueue_sweeps(queue, limit: int = 200) -> Dict[str, str]:
    """Enqueue one job per sweep; returns rq job ids"""
    return {name: queue.enqueue(run_sweep_job, name, limit).id for name in SWEEPS}
