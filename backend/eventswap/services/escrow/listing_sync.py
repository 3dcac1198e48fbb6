"""
Listing synchronization - Keeps Listing.status in step with its transaction

- AWAITING_PAYMENT: ACTIVE -> RESERVED (owned by the transaction)
- COMPLETED: RESERVED -> SOLD (owner only)
- CANCELLED/REFUNDED: RESERVED/SOLD -> ACTIVE, only when this transaction owns
  the listing; a listing since taken by another transaction is left alone
"""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from eventswap.core.listings.models import Listing, ListingStatus
from eventswap.core.security.models import Actor
from eventswap.services.exceptions import ConflictError
from eventswap.services.transaction_engine import LISTING_MACHINE, transition_status

logger = logging.getLogger(__name__)


def reserve_listing(*, db: Session, listing_id: UUID, transaction_id: UUID, actor: Actor) -> Listing:
    """
    Raises:
        ConflictError: Listing no longer ACTIVE
    """
    try:
        return transition_status(
            db=db,
            model=Listing,
            entity_id=listing_id,
            machine=LISTING_MACHINE,
            target=ListingStatus.RESERVED,
            actor=actor,
            expected=[ListingStatus.ACTIVE],
            values={"reserved_by_transaction_id": transaction_id},
        )
    except ConflictError as e:
        raise ConflictError(
            "Listing is no longer available",
            code="LISTING_UNAVAILABLE",
            details=e.details,
        ) from e


def mark_listing_sold(*, db: Session, listing_id: UUID, transaction_id: UUID, actor: Actor) -> Listing:
    return transition_status(
        db=db,
        model=Listing,
        entity_id=listing_id,
        machine=LISTING_MACHINE,
        target=ListingStatus.SOLD,
        actor=actor,
        expected=[ListingStatus.RESERVED],
        criteria=[Listing.reserved_by_transaction_id == transaction_id],
    )


def reactivate_listing(*, db: Session, listing_id: UUID, transaction_id: UUID, actor: Actor) -> bool:
    """
    Return the listing to ACTIVE if this transaction still owns it.

    A lost compare-and-set is retried once: the second attempt re-reads
    ownership and gives up quietly if another transaction took the listing.

    Returns:
        True if the listing was reactivated
    """
    for attempt in (1, 2):
        listing = db.get(Listing, listing_id, populate_existing=True)
        if listing is None:
            return False
        if listing.reserved_by_transaction_id != transaction_id or listing.status not in (
            ListingStatus.RESERVED,
            ListingStatus.SOLD,
        ):
            return False
        try:
            transition_status(
                db=db,
                model=Listing,
                entity_id=listing_id,
                machine=LISTING_MACHINE,
                target=ListingStatus.ACTIVE,
                actor=actor,
                expected=[ListingStatus.RESERVED, ListingStatus.SOLD],
                criteria=[Listing.reserved_by_transaction_id == transaction_id],
                values={"reserved_by_transaction_id": None},
            )
            return True
        except ConflictError:
            if attempt == 2:
                raise
            logger.warning(
                "Listing reactivation lost a concurrent update, retrying",
                extra={"listing_id": str(listing_id), "transaction_id": str(transaction_id)},
            )
    return False
