"""
Sweep job tests
"""

from datetime import timedelta
from decimal import Decimal

from eventswap.core.common.clock import utcnow
from eventswap.core.offers.models import Offer, OfferStatus
from eventswap.services.offers.service import create_offer
from eventswap.workers.jobs import SWEEPS, due_counts, enqueue_sweeps, run_sweep_job, run_sweeps


class RecordingQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, func, *args):
        self.jobs.append((func, args))

        class _Job:
            id = f"job-{len(self.jobs)}"

        return _Job()


def test_enqueue_one_job_per_sweep():
    queue = RecordingQueue()

    job_ids = enqueue_sweeps(queue, limit=50)

    assert set(job_ids) == set(SWEEPS)
    assert [args for _, args in queue.jobs] == [(name, 50) for name in SWEEPS]
    assert all(func is run_sweep_job for func, _ in queue.jobs)


def test_stale_offers_expire(db_session, seller, buyer, make_listing):
    listing = make_listing(seller)
    offer = create_offer(db=db_session, listing_id=listing.id, buyer_id=buyer.id, amount=Decimal("800.00"))
    later = utcnow() + timedelta(hours=49)

    assert due_counts(db_session, utcnow())["expire_offers"] == 0
    assert due_counts(db_session, later)["expire_offers"] == 1

    assert run_sweeps(db_session, now=later)["expire_offers"] == 1
    db_session.expire_all()
    assert db_session.get(Offer, offer.id).status == OfferStatus.EXPIRED


def test_run_sweep_job_uses_own_session(db_session):
    assert run_sweep_job("expire_unpaid_transactions") == 0
