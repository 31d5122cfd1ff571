"""Sub-Order Aggregator — derives parent readiness from vendor sub-orders.

Triggered whenever a sub-order is written. Every write re-evaluates the
full set of siblings, so redundant or out-of-order writes are harmless:
once the parent is Ready the predicate stays false.

Only a Preparing parent can be advanced. Vendors may finish while the
order is still Created; the external Created -> Preparing write must then
fire the sub-order-written trigger with the parent id so the siblings are
evaluated again.
"""

from collections.abc import Iterable

import structlog

from delivery.errors import NoSubOrders, PermanentRecordMissing
from delivery.identifiers import canonical_id
from delivery.order.order import OrderStatus
from delivery.order.state_machine import OrderStateMachine, TransitionResult
from delivery.storage.port import OrderStore
from delivery.sub_order.sub_order import READY_SENTINEL, SubOrderStatus

logger = structlog.get_logger(__name__)

ADVANCED_STATUS = OrderStatus.READY
ADVANCEABLE_STATUS = OrderStatus.PREPARING


def evaluate(parent_status, sub_order_statuses: Iterable) -> bool:
    """Return True when the parent order should advance to Ready.

    Raises NoSubOrders for an empty sibling set: an order without sub-orders
    is never considered ready.
    """
    statuses = [SubOrderStatus(status) for status in sub_order_statuses]
    if not statuses:
        raise NoSubOrders("Order has no sub-orders")

    parent_status = OrderStatus(parent_status)
    if parent_status != ADVANCEABLE_STATUS:
        logger.debug("Parent order cannot advance to Ready", status=parent_status.value)
        return False

    return all(status == READY_SENTINEL for status in statuses)


class SubOrderAggregator:
    def __init__(self, store: OrderStore, state_machine: OrderStateMachine):
        self._store = store
        self._state_machine = state_machine

    async def on_sub_order_written(self, sub_order_id=None, parent_order_id=None) -> TransitionResult | None:
        """Re-evaluate the parent of a written sub-order.

        Returns the transition result when the parent was asked to advance,
        None when it was not. IllegalTransition and TransientStoreError
        propagate to the trigger.
        """
        if parent_order_id is None:
            if sub_order_id is None:
                raise ValueError("Either sub_order_id or parent_order_id is required")
            try:
                sub_order = await self._store.get_sub_order(sub_order_id)
            except PermanentRecordMissing:
                logger.error("Sub-order not found", sub_order_id=str(sub_order_id))
                return None
            parent_order_id = sub_order.parent_order_id

        parent_order_id = canonical_id(parent_order_id)

        try:
            order = await self._store.get_order(parent_order_id)
        except PermanentRecordMissing:
            logger.error("Parent order not found", order_id=parent_order_id)
            return None

        siblings = await self._store.list_sub_orders(parent_order_id)

        try:
            should_advance = evaluate(order.status, [sibling.status for sibling in siblings])
        except NoSubOrders:
            logger.warning("Order has no sub-orders, not advancing", order_id=parent_order_id)
            return None

        if not should_advance:
            logger.debug(
                "Order not ready yet",
                order_id=parent_order_id,
                status=order.status,
                sub_orders=len(siblings),
            )
            return None

        return await self._state_machine.transition(parent_order_id, ADVANCED_STATUS)
