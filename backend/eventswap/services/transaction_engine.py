"""
Transition Engine - Central transition tables and compare-and-set status writes

Every status change in the system goes through transition_status():
1. Look up the entity's current status (NotFoundError if absent)
2. Check the (current -> target) edge exists in the machine's table for the
   requested transition kind (ConflictError otherwise)
3. UPDATE ... WHERE id = :id AND status = :current (compare-and-set)
4. rowcount == 0 means a concurrent writer won: ConflictError "already in state X"
5. Write an AuditLog row for the applied transition

Callers own the unit of work (commit/rollback).
"""

import enum
import logging
from contextlib import contextmanager
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventswap.core.compliance.models import AuditLog
from eventswap.core.disputes.models import DisputeStatus
from eventswap.core.listings.models import ListingStatus
from eventswap.core.offers.models import OfferStatus
from eventswap.core.security.models import Actor
from eventswap.core.transactions.models import TransactionStatus, TERMINAL_TRANSACTION_STATUSES
from eventswap.services.exceptions import ConflictError, NotFoundError
from eventswap.utils.metrics import record_state_transition

logger = logging.getLogger(__name__)


class TransitionKind(str, enum.Enum):
    """Who may drive an edge of the transition table"""
    NORMAL = "NORMAL"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"


class StateMachine:
    """Closed transition table keyed by transition kind"""

    def __init__(
        self,
        name: str,
        transitions: Mapping[TransitionKind, Mapping[enum.Enum, Iterable[enum.Enum]]],
    ):
        self.name = name
        self._transitions: Dict[TransitionKind, Dict[enum.Enum, FrozenSet[enum.Enum]]] = {
            kind: {source: frozenset(targets) for source, targets in table.items()}
            for kind, table in transitions.items()
        }

    def allowed_targets(self, source: enum.Enum, kind: TransitionKind = TransitionKind.NORMAL) -> FrozenSet[enum.Enum]:
        return self._transitions.get(kind, {}).get(source, frozenset())

    def can_transition(self, source: enum.Enum, target: enum.Enum, kind: TransitionKind = TransitionKind.NORMAL) -> bool:
        return target in self.allowed_targets(source, kind)

    def sources_for(self, target: enum.Enum, kind: TransitionKind = TransitionKind.NORMAL) -> FrozenSet[enum.Enum]:
        return frozenset(
            source
            for source, targets in self._transitions.get(kind, {}).items()
            if target in targets
        )


_NON_TERMINAL_TRANSACTION_STATUSES = [
    s for s in TransactionStatus if s not in TERMINAL_TRANSACTION_STATUSES
]

ESCROW_MACHINE = StateMachine(
    "transaction",
    {
        TransitionKind.NORMAL: {
            TransactionStatus.PENDING: [TransactionStatus.AWAITING_PAYMENT],
            TransactionStatus.AWAITING_PAYMENT: [TransactionStatus.PAYMENT_CONFIRMED, TransactionStatus.CANCELLED],
            TransactionStatus.PAYMENT_CONFIRMED: [TransactionStatus.TRANSFERRING, TransactionStatus.DISPUTED],
            TransactionStatus.TRANSFERRING: [TransactionStatus.COMPLETED, TransactionStatus.DISPUTED],
            TransactionStatus.DISPUTED: [TransactionStatus.COMPLETED, TransactionStatus.REFUNDED],
        },
        TransitionKind.ADMIN_OVERRIDE: {
            **{
                status: [TransactionStatus.REFUNDED, TransactionStatus.CANCELLED]
                for status in _NON_TERMINAL_TRANSACTION_STATUSES
            },
            # Post-completion chargeback
            TransactionStatus.COMPLETED: [TransactionStatus.REFUNDED],
        },
    },
)

OFFER_MACHINE = StateMachine(
    "offer",
    {
        TransitionKind.NORMAL: {
            OfferStatus.PENDING: [
                OfferStatus.ACCEPTED,
                OfferStatus.REJECTED,
                OfferStatus.COUNTERED,
                OfferStatus.EXPIRED,
            ],
        },
    },
)

DISPUTE_MACHINE = StateMachine(
    "dispute",
    {
        TransitionKind.NORMAL: {
            DisputeStatus.OPEN: [DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED],
            DisputeStatus.UNDER_REVIEW: [DisputeStatus.RESOLVED],
        },
        # Closing the dispute of a transaction an admin refunded or cancelled
        TransitionKind.ADMIN_OVERRIDE: {
            DisputeStatus.OPEN: [DisputeStatus.RESOLVED],
            DisputeStatus.UNDER_REVIEW: [DisputeStatus.RESOLVED],
        },
    },
)

LISTING_MACHINE = StateMachine(
    "listing",
    {
        TransitionKind.NORMAL: {
            ListingStatus.ACTIVE: [ListingStatus.RESERVED],
            ListingStatus.RESERVED: [ListingStatus.SOLD, ListingStatus.ACTIVE],
            ListingStatus.SOLD: [ListingStatus.ACTIVE],
        },
    },
)


def transition_status(
    *,
    db: Session,
    model,
    entity_id: UUID,
    machine: StateMachine,
    target: enum.Enum,
    actor: Actor,
    kind: TransitionKind = TransitionKind.NORMAL,
    expected: Optional[Sequence[enum.Enum]] = None,
    criteria: Sequence[Any] = (),
    values: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
):
    """
    Apply one compare-and-set status transition.

    Args:
        model: ORM class with `id` and `status` columns
        expected: Optional narrower set of acceptable current states
        criteria: Extra WHERE clauses the row must satisfy (ownership guards)
        values: Additional columns written atomically with the status

    Returns:
        The refreshed ORM instance

    Raises:
        NotFoundError: Entity absent
        ConflictError: Edge not in the table, criteria not met, or lost race
    """
    current = db.execute(
        select(model.status).where(model.id == entity_id)
    ).scalar_one_or_none()
    if current is None:
        raise NotFoundError(f"{machine.name.capitalize()} {entity_id} not found")

    if not machine.can_transition(current, target, kind) or (expected is not None and current not in expected):
        raise _conflict(machine, entity_id, current, target)

    stmt = (
        update(model)
        .where(model.id == entity_id, model.status == current, *criteria)
        .values(status=target, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)

    if result.rowcount != 1:
        latest = db.execute(
            select(model.status).where(model.id == entity_id)
        ).scalar_one_or_none()
        raise _conflict(machine, entity_id, latest if latest is not None else current, target)

    db.add(AuditLog(
        actor_user_id=actor.user_id,
        actor_role=actor.primary_role,
        action=f"{machine.name.upper()}_{target.value}",
        entity_type=machine.name,
        entity_id=entity_id,
        before={"status": current.value},
        after={"status": target.value, "kind": kind.value},
        reason=reason,
    ))

    record_state_transition(machine=machine.name, source=current.value, target=target.value, kind=kind.value)
    logger.info(
        "State transition applied",
        extra={
            "machine": machine.name,
            "entity_id": str(entity_id),
            "from_status": current.value,
            "to_status": target.value,
            "kind": kind.value,
        },
    )

    return db.get(model, entity_id, populate_existing=True)


def _conflict(machine: StateMachine, entity_id: UUID, current: enum.Enum, target: enum.Enum) -> ConflictError:
    return ConflictError(
        f"{machine.name.capitalize()} already in state {current.value}",
        code="INVALID_STATE_TRANSITION",
        details={
            "entity_id": str(entity_id),
            "current_status": current.value,
            "target_status": target.value,
        },
    )


@contextmanager
def unit_of_work(db: Session):
    """
    Commit everything written inside the block, or nothing.

    Unique-index violations (one live offer per buyer, one open transaction
    per listing, one open dispute per transaction) surface as ConflictError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            "Concurrent update conflict",
            code="CONCURRENT_UPDATE",
            details={"constraint_error": str(e.orig)},
        ) from e
    except Exception:
        db.rollback()
        raise
