"""Error taxonomy for the delivery domain.

Aggregates still raise ``protean.exceptions.ValidationError`` for field-level
problems. The classes below describe what went wrong at the service level so
that each trigger boundary can decide between logging, retrying and failing.
"""


class DeliveryError(Exception):
    """Base class for all delivery coordination errors."""


class IllegalTransition(DeliveryError):
    """The requested status is not reachable from the order's current status.

    Indicates a logic bug or a data race. Never retried.
    """

    def __init__(self, order_id, current, target):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id}: cannot transition from {current.value} to {target.value}")


class NoSubOrders(DeliveryError):
    """A parent order has no sub-orders, so readiness cannot be decided."""


class NoEligibleCandidate(DeliveryError):
    """No candidate with a valid location was available for selection."""


class TransientStoreError(DeliveryError):
    """The backing store could not be reached or timed out."""


class PermanentRecordMissing(DeliveryError):
    """A referenced order, sub-order, worker or transition does not exist."""

    def __init__(self, record_type: str, record_id):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")


class EventPublishError(DeliveryError):
    """The event transport rejected or failed to accept a message."""


class InvalidIdentifier(DeliveryError, ValueError):
    """An identifier could not be normalized to its canonical form."""


class InvalidMessage(DeliveryError, ValueError):
    """A transport payload could not be decoded into an order message."""
