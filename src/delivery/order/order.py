"""Order aggregate — the customer-facing view of a multi-vendor order.

The order's status is derived from vendor sub-orders and courier progress.
Only two edges are driven by this service; the others arrive from the
customer, vendor and courier apps and are accepted as valid prior states.

State Machine (7 states):
    CREATED → PREPARING → READY → DISPATCHING → IN_DELIVERY → COMPLETED
    CANCELLED (from any non-terminal state)

Driven here:
    PREPARING → READY          (all sub-orders ready, raises OrderReady)
    DISPATCHING → IN_DELIVERY  (scheduled delivery start, raises DeliveryStarted)
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, ValueObject

from delivery.domain import delivery
from delivery.errors import IllegalTransition
from delivery.order.events import AssignmentRequested, DeliveryStarted, OrderReady


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    CREATED = "Created"
    PREPARING = "Preparing"
    READY = "Ready"
    DISPATCHING = "Dispatching"
    IN_DELIVERY = "In_Delivery"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.DISPATCHING, OrderStatus.CANCELLED},
    OrderStatus.DISPATCHING: {OrderStatus.IN_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.IN_DELIVERY: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# Forward order of the happy path, used to tell "not there yet" from "already past"
_PROGRESSION = [
    OrderStatus.CREATED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DISPATCHING,
    OrderStatus.IN_DELIVERY,
    OrderStatus.COMPLETED,
]


def valid_targets(status: OrderStatus) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS.get(status, set()))


def has_reached(current: OrderStatus, target: OrderStatus) -> bool:
    """True when ``current`` is ``target``, lies beyond it, or is terminal."""
    if current in TERMINAL_STATES:
        return True
    return _PROGRESSION.index(current) >= _PROGRESSION.index(target)


def has_progressed_to(current: OrderStatus, target: OrderStatus) -> bool:
    """True when ``current`` is ``target`` or a later step of the delivery path.

    Unlike ``has_reached``, a cancelled order has not progressed anywhere.
    """
    if current == OrderStatus.CANCELLED:
        return False
    return _PROGRESSION.index(current) >= _PROGRESSION.index(target)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@delivery.value_object(part_of="Order")
class GeoPoint:
    """Customer drop-off location captured when the order was placed."""

    latitude = Float(required=True, min_value=-90.0, max_value=90.0)
    longitude = Float(required=True, min_value=-180.0, max_value=180.0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@delivery.aggregate
class Order:
    status = String(
        choices=OrderStatus,
        default=OrderStatus.CREATED.value,
    )
    customer_location = ValueObject(GeoPoint)
    ready_at = DateTime()
    delivery_started_at = DateTime()

    # Dispatch idempotency marker: set once per order by the Worker Dispatcher
    assigned_worker_id = Identifier()
    assigned_at = DateTime()

    # Bumped by the store on every conditional save
    revision = Integer(default=0)

    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, order_id, customer_location=None, status=OrderStatus.CREATED.value):
        """Build an order record as written by the customer app.

        Args:
            order_id: Canonical order identifier.
            customer_location: Dict with latitude and longitude, or None.
            status: Initial status value (defaults to Created).
        """
        now = datetime.now(UTC)
        return cls(
            id=order_id,
            status=status,
            customer_location=GeoPoint(**customer_location) if customer_location else None,
            revision=0,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def can_transition_to(self, target_status: OrderStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(self.current_status, set())

    def _assert_can_transition(self, target_status):
        """Validate that the current state allows transition to target."""
        if not self.can_transition_to(target_status):
            raise IllegalTransition(str(self.id), self.current_status, target_status)

    def advance_to(self, target_status: OrderStatus):
        """Apply one of the edges driven by this service and return its event."""
        if target_status == OrderStatus.READY:
            return self.mark_ready()
        if target_status == OrderStatus.IN_DELIVERY:
            return self.start_delivery()

        self._assert_can_transition(target_status)
        raise ValueError(f"Transition to {target_status.value} is applied by external systems")

    # -------------------------------------------------------------------
    # Driven transitions
    # -------------------------------------------------------------------
    def mark_ready(self, ready_at=None):
        """All vendor sub-orders are ready."""
        self._assert_can_transition(OrderStatus.READY)

        now = ready_at or datetime.now(UTC)
        self.status = OrderStatus.READY.value
        self.ready_at = now
        self.updated_at = now

        event = OrderReady(order_id=str(self.id), ready_at=now)
        self.raise_(event)
        return event

    def start_delivery(self, started_at=None):
        """The scheduled delivery start time has passed."""
        self._assert_can_transition(OrderStatus.IN_DELIVERY)

        now = started_at or datetime.now(UTC)
        self.status = OrderStatus.IN_DELIVERY.value
        self.delivery_started_at = now
        self.updated_at = now

        event = DeliveryStarted(order_id=str(self.id), started_at=now)
        self.raise_(event)
        return event

    # -------------------------------------------------------------------
    # Worker assignment
    # -------------------------------------------------------------------
    def record_assignment(self, worker_id, distance_km=None):
        """Record the worker chosen for this order. Only allowed once, in READY state."""
        if self.current_status != OrderStatus.READY:
            raise ValidationError({"status": ["Workers can only be assigned to Ready orders"]})
        if self.assigned_worker_id:
            raise ValidationError({"assigned_worker_id": [f"Order already assigned to {self.assigned_worker_id}"]})

        now = datetime.now(UTC)
        self.assigned_worker_id = str(worker_id)
        self.assigned_at = now
        self.updated_at = now

        event = AssignmentRequested(
            order_id=str(self.id),
            worker_id=str(worker_id),
            distance_km=distance_km,
            requested_at=now,
        )
        self.raise_(event)
        return event

    def clear_assignment(self):
        """Forget the previous assignment so the order can be dispatched again."""
        self.assigned_worker_id = None
        self.assigned_at = None
        self.updated_at = datetime.now(UTC)
