"""Domain events for the Order aggregate.

Each event marks exactly one committed transition (or one committed worker
assignment). The Event Publisher turns them into transport messages keyed by
order id; downstream consumers deduplicate on that key.
"""

from protean.fields import DateTime, Float, Identifier

from delivery.domain import delivery


@delivery.event(part_of="Order")
class OrderReady:
    """Every vendor sub-order is ready; the order can be handed to a courier."""

    __version__ = 1

    order_id = Identifier(required=True)
    ready_at = DateTime(required=True)


@delivery.event(part_of="Order")
class DeliveryStarted:
    """The scheduled delivery start was applied to the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@delivery.event(part_of="Order")
class AssignmentRequested:
    """The nearest available worker was selected and asked to take the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    worker_id = Identifier(required=True)
    distance_km = Float()
    requested_at = DateTime(required=True)
