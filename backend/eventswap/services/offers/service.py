"""
Offers service - Price negotiation between a buyer and a listing's seller

Chain rules:
1. A buyer opens a PENDING offer; the seller is the responder
2. The responder accepts, rejects or counters
3. A counter closes the offer as COUNTERED and opens a PENDING child with the
   roles swapped, so the two parties alternate until one accepts or rejects
4. PENDING offers past expires_at become EXPIRED (lazily, and via the sweep)
5. Accepting an offer expires every other live offer on the listing and hands
   an OfferAccepted event to the escrow machine in the same unit of work
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from eventswap.core.common.clock import ensure_utc, utcnow
from eventswap.core.listings.models import Listing, ListingStatus
from eventswap.core.offers.models import Offer, OfferStatus
from eventswap.core.security.models import Actor
from eventswap.infrastructure.settings import get_settings
from eventswap.services.escrow.service import OfferAccepted
from eventswap.services.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from eventswap.services.transaction_engine import OFFER_MACHINE, transition_status, unit_of_work
from eventswap.utils.metrics import record_offer_action

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

OFFER_ACTIONS = ("accept", "reject", "counter")


@dataclass
class OfferResponse:
    """What a respond call produced"""
    offer: Offer
    counter_offer: Optional[Offer] = None
    accepted_result: Optional[object] = None  # Whatever the acceptance handler returned


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


def _is_stale(offer: Offer, now: datetime) -> bool:
    return offer.status == OfferStatus.PENDING and ensure_utc(offer.expires_at) <= now


def _expire(db: Session, offer: Offer, now: datetime) -> None:
    transition_status(
        db=db,
        model=Offer,
        entity_id=offer.id,
        machine=OFFER_MACHINE,
        target=OfferStatus.EXPIRED,
        actor=Actor.system(),
        expected=[OfferStatus.PENDING],
        values={"responded_at": now},
        reason="OFFER_EXPIRED",
    )
    record_offer_action("expire")


def create_offer(
    *,
    db: Session,
    listing_id: UUID,
    buyer_id: UUID,
    amount: Decimal,
    message: Optional[str] = None,
) -> Offer:
    """
    Open a negotiation on an ACTIVE listing.

    Raises:
        ValidationError: Non-positive amount, listing not ACTIVE, self-offer, or amount above the cap
        NotFoundError: Listing absent
        ConflictError: Buyer already has a live offer on the listing
    """
    settings = get_settings()

    amount = Decimal(amount)
    if amount <= 0:
        raise ValidationError("Offer amount must be greater than 0")

    listing = db.get(Listing, listing_id)
    if not listing:
        raise NotFoundError(f"Listing {listing_id} not found")
    if listing.status != ListingStatus.ACTIVE:
        raise ValidationError(
            f"Listing is not available for offers (status {listing.status.value})",
            code="LISTING_NOT_ACTIVE",
        )
    if listing.seller_id == buyer_id:
        raise ValidationError("Sellers cannot make offers on their own listing", code="SELF_OFFER")

    max_amount = _money(Decimal(listing.asking_price) * settings.MAX_OFFER_MULTIPLIER)
    if amount > max_amount:
        raise ValidationError(
            "Offer exceeds the maximum allowed for this listing",
            code="OFFER_ABOVE_LIMIT",
            details={"max_amount": str(max_amount)},
        )

    now = utcnow()
    with unit_of_work(db):
        live = db.execute(
            select(Offer).where(
                Offer.listing_id == listing_id,
                Offer.buyer_id == buyer_id,
                Offer.status == OfferStatus.PENDING,
            )
        ).scalars().all()
        for offer in live:
            if _is_stale(offer, now):
                _expire(db, offer, now)
            else:
                raise ConflictError(
                    "You already have a live offer on this listing",
                    code="OFFER_ALREADY_LIVE",
                    details={"offer_id": str(offer.id)},
                )

        offer = Offer(
            listing_id=listing_id,
            buyer_id=buyer_id,
            seller_id=listing.seller_id,
            proposer_id=buyer_id,
            responder_id=listing.seller_id,
            amount=_money(amount),
            message=message,
            status=OfferStatus.PENDING,
            expires_at=now + timedelta(hours=settings.OFFER_EXPIRY_HOURS),
        )
        db.add(offer)

    db.refresh(offer)
    record_offer_action("create")
    logger.info(
        "Offer created",
        extra={"offer_id": str(offer.id), "listing_id": str(listing_id), "buyer_id": str(buyer_id), "amount": str(offer.amount)},
    )
    return offer


def respond_to_offer(
    *,
    db: Session,
    offer_id: UUID,
    actor: Actor,
    action: str,
    counter_amount: Optional[Decimal] = None,
    counter_message: Optional[str] = None,
    on_accepted: Optional[Callable[[OfferAccepted], object]] = None,
) -> OfferResponse:
    """
    Accept, reject or counter a PENDING offer.

    on_accepted runs inside the same unit of work as the acceptance; if it
    raises, the acceptance is rolled back too.

    Raises:
        ValidationError: Unknown action or non-positive counter amount
        NotFoundError: Offer absent
        AuthorizationError: Actor is not the responder
        ConflictError: Offer not PENDING (or expired), or listing no longer ACTIVE
    """
    action = (action or "").lower()
    if action not in OFFER_ACTIONS:
        raise ValidationError(f"Unknown action '{action}'", details={"allowed": list(OFFER_ACTIONS)})

    offer = db.get(Offer, offer_id, populate_existing=True)
    if not offer:
        raise NotFoundError(f"Offer {offer_id} not found")
    if offer.responder_id != actor.user_id:
        raise AuthorizationError("Only the party the offer was made to can respond")

    now = utcnow()
    if _is_stale(offer, now):
        with unit_of_work(db):
            _expire(db, offer, now)
        raise ConflictError("Offer has expired", code="OFFER_EXPIRED", details={"offer_id": str(offer_id)})

    if action == "counter":
        if counter_amount is None or Decimal(counter_amount) <= 0:
            raise ValidationError("Counter amount must be greater than 0")

    response = OfferResponse(offer=offer)
    with unit_of_work(db):
        if action == "accept":
            offer = transition_status(
                db=db,
                model=Offer,
                entity_id=offer_id,
                machine=OFFER_MACHINE,
                target=OfferStatus.ACCEPTED,
                actor=actor,
                expected=[OfferStatus.PENDING],
                values={"responded_at": now},
            )
            listing = db.execute(
                select(Listing)
                .where(Listing.id == offer.listing_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()
            if listing.status != ListingStatus.ACTIVE:
                raise ConflictError(
                    "Listing is no longer available",
                    code="LISTING_UNAVAILABLE",
                    details={"listing_status": listing.status.value},
                )

            expired = db.execute(
                update(Offer)
                .where(
                    Offer.listing_id == offer.listing_id,
                    Offer.status == OfferStatus.PENDING,
                    Offer.id != offer_id,
                )
                .values(status=OfferStatus.EXPIRED, responded_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount

            if on_accepted is not None:
                response.accepted_result = on_accepted(OfferAccepted(
                    offer_id=offer.id,
                    listing_id=offer.listing_id,
                    buyer_id=offer.buyer_id,
                    seller_id=offer.seller_id,
                    amount=Decimal(offer.amount),
                ))
            logger.info(
                "Offer accepted",
                extra={"offer_id": str(offer_id), "listing_id": str(offer.listing_id), "expired_siblings": expired},
            )

        elif action == "reject":
            offer = transition_status(
                db=db,
                model=Offer,
                entity_id=offer_id,
                machine=OFFER_MACHINE,
                target=OfferStatus.REJECTED,
                actor=actor,
                expected=[OfferStatus.PENDING],
                values={"responded_at": now},
            )

        else:
            counter_amount = _money(counter_amount)
            offer = transition_status(
                db=db,
                model=Offer,
                entity_id=offer_id,
                machine=OFFER_MACHINE,
                target=OfferStatus.COUNTERED,
                actor=actor,
                expected=[OfferStatus.PENDING],
                values={"responded_at": now, "counter_amount": counter_amount},
            )
            child = Offer(
                listing_id=offer.listing_id,
                buyer_id=offer.buyer_id,
                seller_id=offer.seller_id,
                proposer_id=offer.responder_id,
                responder_id=offer.proposer_id,
                amount=counter_amount,
                message=counter_message,
                status=OfferStatus.PENDING,
                parent_offer_id=offer.id,
                expires_at=now + timedelta(hours=get_settings().OFFER_EXPIRY_HOURS),
            )
            db.add(child)
            response.counter_offer = child

        response.offer = offer

    db.refresh(response.offer)
    if response.counter_offer is not None:
        db.refresh(response.counter_offer)
    record_offer_action(action)
    return response


def list_offers(
    *,
    db: Session,
    user_id: UUID,
    role: Optional[str] = None,
    listing_id: Optional[UUID] = None,
    status: Optional[OfferStatus] = None,
    page: int = 1,
    per_page: int = 20,
) -> Tuple[List[Offer], int]:
    """
    Offers where the user is a party, newest first.

    role: "buyer" or "seller" narrows to one side; None returns both.
    """
    page = max(page, 1)
    per_page = min(max(per_page, 1), 50)

    if role == "buyer":
        party = Offer.buyer_id == user_id
    elif role == "seller":
        party = Offer.seller_id == user_id
    else:
        party = or_(Offer.buyer_id == user_id, Offer.seller_id == user_id)

    filters = [party]
    if listing_id is not None:
        filters.append(Offer.listing_id == listing_id)
    if status is not None:
        filters.append(Offer.status == status)

    total = db.execute(select(func.count(Offer.id)).where(*filters)).scalar_one()
    items = db.execute(
        select(Offer)
        .where(*filters)
        .order_by(Offer.created_at.desc(), Offer.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).scalars().all()
    return list(items), total


def expire_stale_offers(*, db: Session, now: Optional[datetime] = None, limit: int = 500) -> int:
    """
    Sweep: PENDING offers past expires_at -> EXPIRED.

    Returns:
        Number of offers expired
    """
    now = now or utcnow()
    ids = db.execute(
        select(Offer.id)
        .where(Offer.status == OfferStatus.PENDING, Offer.expires_at <= now)
        .order_by(Offer.expires_at)
        .limit(limit)
    ).scalars().all()

    expired = 0
    for offer_id in ids:
        try:
            with unit_of_work(db):
                transition_status(
                    db=db,
                    model=Offer,
                    entity_id=offer_id,
                    machine=OFFER_MACHINE,
                    target=OfferStatus.EXPIRED,
                    actor=Actor.system(),
                    expected=[OfferStatus.PENDING],
                    values={"responded_at": now},
                    reason="OFFER_EXPIRED",
                )
            expired += 1
            record_offer_action("expire")
        except ConflictError:
            logger.info("Offer responded to before expiry", extra={"offer_id": str(offer_id)})
    return expired
