"""Domain events for the PendingTransition aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from delivery.domain import delivery


@delivery.event(part_of="PendingTransition")
class TransitionScheduled:
    """A delayed transition was registered for an order."""

    __version__ = 1

    transition_id = Identifier(required=True)
    order_id = Identifier(required=True)
    kind = String(required=True)
    due_at = DateTime(required=True)


@delivery.event(part_of="PendingTransition")
class TransitionCompleted:
    """The delayed transition was applied (or found already applied)."""

    __version__ = 1

    transition_id = Identifier(required=True)
    order_id = Identifier(required=True)
    kind = String(required=True)
    completed_at = DateTime(required=True)


@delivery.event(part_of="PendingTransition")
class TransitionFailed:
    """The delayed transition gave up and needs operator attention."""

    __version__ = 1

    transition_id = Identifier(required=True)
    order_id = Identifier(required=True)
    kind = String(required=True)
    reason = String(required=True)
    attempts = Integer(required=True)
    failed_at = DateTime(required=True)


@delivery.event(part_of="PendingTransition")
class TransitionRetried:
    """An operator put a failed transition back into the sweep."""

    __version__ = 1

    transition_id = Identifier(required=True)
    order_id = Identifier(required=True)
    kind = String(required=True)
    retried_at = DateTime(required=True)
