"""PendingTransition aggregate — a durable, due-dated order status change.

A pending transition is written when the order is confirmed and applied by
the recurring sweep once it is due. Nothing waits in memory for the due
time: the record itself is the timer, so a restart loses nothing.

State Machine (3 states):
    PENDING → COMPLETED
    PENDING → FAILED  (retry ceiling reached, or order can never get there)
    FAILED → (operator retry) → PENDING
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from delivery.domain import delivery
from delivery.order.order import OrderStatus
from delivery.schedule.events import (
    TransitionCompleted,
    TransitionFailed,
    TransitionRetried,
    TransitionScheduled,
)


class TransitionKind(Enum):
    START_DELIVERY = "StartDelivery"


class TransitionState(Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


# Order status each kind of transition drives the order into
_TARGET_STATUS = {
    TransitionKind.START_DELIVERY: OrderStatus.IN_DELIVERY,
}


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so stored and computed times compare."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


@delivery.aggregate
class PendingTransition:
    order_id = Identifier(required=True)
    kind = String(choices=TransitionKind, required=True)
    due_at = DateTime(required=True)
    state = String(choices=TransitionState, default=TransitionState.PENDING.value)

    # Retry
    attempts = Integer(default=0)
    max_attempts = Integer(default=5)
    last_error = String(max_length=500)

    completed_at = DateTime()
    failed_at = DateTime()

    # Bumped by the store on every conditional save
    revision = Integer(default=0)

    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, order_id, kind, due_at, max_attempts=5):
        """Create a new transition in PENDING state."""
        now = datetime.now(UTC)
        kind = TransitionKind(kind)
        due_at = as_utc(due_at)

        transition = cls(
            order_id=order_id,
            kind=kind.value,
            due_at=due_at,
            state=TransitionState.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            revision=0,
            created_at=now,
            updated_at=now,
        )

        transition.raise_(
            TransitionScheduled(
                transition_id=str(transition.id),
                order_id=str(order_id),
                kind=kind.value,
                due_at=due_at,
            )
        )

        return transition

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_state(self) -> TransitionState:
        return TransitionState(self.state)

    @property
    def is_active(self) -> bool:
        """Pending and failed records both block a duplicate schedule."""
        return self.current_state != TransitionState.COMPLETED

    @property
    def target_status(self) -> OrderStatus:
        return _TARGET_STATUS[TransitionKind(self.kind)]

    def is_due(self, as_of: datetime) -> bool:
        return self.current_state == TransitionState.PENDING and as_utc(self.due_at) <= as_utc(as_of)

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def mark_completed(self, completed_at=None) -> bool:
        """Mark the transition applied. Returns False when it already was."""
        if self.current_state == TransitionState.COMPLETED:
            return False
        if self.current_state != TransitionState.PENDING:
            raise ValidationError({"state": [f"Cannot complete a transition in {self.state} state"]})

        now = completed_at or datetime.now(UTC)
        self.state = TransitionState.COMPLETED.value
        self.completed_at = now
        self.last_error = None
        self.updated_at = now

        self.raise_(
            TransitionCompleted(
                transition_id=str(self.id),
                order_id=str(self.order_id),
                kind=self.kind,
                completed_at=now,
            )
        )
        return True

    def record_failure(self, reason: str) -> bool:
        """Count a failed attempt. Returns True once the retry ceiling is reached."""
        if self.current_state != TransitionState.PENDING:
            raise ValidationError({"state": ["Only pending transitions can record failed attempts"]})

        self.attempts = self.attempts + 1
        self.last_error = reason[:500]
        self.updated_at = datetime.now(UTC)

        if self.attempts >= self.max_attempts:
            self.mark_failed(reason)
            return True
        return False

    def mark_failed(self, reason: str):
        """Give up on this transition and surface it to operators."""
        if self.current_state != TransitionState.PENDING:
            raise ValidationError({"state": [f"Cannot fail a transition in {self.state} state"]})

        now = datetime.now(UTC)
        self.state = TransitionState.FAILED.value
        self.last_error = reason[:500]
        self.failed_at = now
        self.updated_at = now

        self.raise_(
            TransitionFailed(
                transition_id=str(self.id),
                order_id=str(self.order_id),
                kind=self.kind,
                reason=reason[:500],
                attempts=self.attempts,
                failed_at=now,
            )
        )

    def retry(self):
        """Put a failed transition back into the sweep with a fresh attempt budget."""
        if self.current_state != TransitionState.FAILED:
            raise ValidationError({"state": ["Only failed transitions can be retried"]})

        now = datetime.now(UTC)
        self.state = TransitionState.PENDING.value
        self.attempts = 0
        self.failed_at = None
        self.updated_at = now

        self.raise_(
            TransitionRetried(
                transition_id=str(self.id),
                order_id=str(self.order_id),
                kind=self.kind,
                retried_at=now,
            )
        )
