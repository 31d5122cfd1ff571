"""Order State Machine service — applies a driven transition exactly once.

Several invocations may race to move the same order (two vendors marking
their sub-orders ready at the same moment, or a sweep re-running after a
crash). Each one loads the order, applies the edge on its copy and saves it
conditionally. The winner publishes the event; a loser reloads, sees the
order at or past the target, and returns a no-op result.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from delivery.errors import EventPublishError, IllegalTransition, TransientStoreError
from delivery.identifiers import canonical_id
from delivery.messaging.publisher import EventPublisher
from delivery.order.order import OrderStatus, has_progressed_to
from delivery.storage.port import OrderStore

logger = structlog.get_logger(__name__)


@dataclass
class TransitionResult:
    order_id: str
    target: OrderStatus
    applied: bool
    event: Any = None
    publish_error: str | None = None

    @property
    def published(self) -> bool:
        return self.applied and self.publish_error is None


class OrderStateMachine:
    def __init__(self, store: OrderStore, publisher: EventPublisher, max_save_attempts: int = 3):
        self._store = store
        self._publisher = publisher
        self._max_save_attempts = max_save_attempts

    async def transition(self, order_id, target: OrderStatus) -> TransitionResult:
        """Move the order to ``target`` unless it is already there or beyond.

        Raises:
            IllegalTransition: ``target`` is not reachable from the current status.
            PermanentRecordMissing: the order does not exist.
            TransientStoreError: the store failed, or the conditional save kept losing.
        """
        order_id = canonical_id(order_id)

        for attempt in range(1, self._max_save_attempts + 1):
            order = await self._store.get_order(order_id)
            current = order.current_status

            if has_progressed_to(current, target):
                logger.info(
                    "Order already at or past target status, nothing to do",
                    order_id=order_id,
                    status=current.value,
                    target=target.value,
                )
                return TransitionResult(order_id=order_id, target=target, applied=False)

            try:
                event = order.advance_to(target)
            except IllegalTransition:
                logger.error(
                    "Illegal order transition",
                    order_id=order_id,
                    current=current.value,
                    target=target.value,
                )
                raise

            if await self._store.save_order_if_unchanged(order):
                logger.info(
                    "Order transitioned",
                    order_id=order_id,
                    previous=current.value,
                    status=target.value,
                )
                return await self._publish(order_id, target, event)

            logger.info(
                "Order changed concurrently, re-evaluating",
                order_id=order_id,
                target=target.value,
                attempt=attempt,
            )

        raise TransientStoreError(
            f"Order {order_id}: gave up moving to {target.value} after {self._max_save_attempts} conflicting saves"
        )

    async def _publish(self, order_id, target, event) -> TransitionResult:
        result = TransitionResult(order_id=order_id, target=target, applied=True, event=event)
        try:
            await self._publisher.publish(event)
        except EventPublishError as exc:
            # The transition stays committed; operators can re-publish
            result.publish_error = str(exc)
        return result
