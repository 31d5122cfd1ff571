"""Worker Dispatcher — assigns the nearest available worker to a ready order.

Consumes ``orderReady`` messages. The transport may deliver the same message
more than once, so the assignment is claimed on the order record first (a
conditional save of ``assigned_worker_id``) and only the claimant notifies
the worker. Every failure here is logged and the dispatch dropped; nothing
rolls back the order's Ready status.
"""

from dataclasses import dataclass

import structlog

from delivery.errors import (
    DeliveryError,
    EventPublishError,
    InvalidMessage,
    NoEligibleCandidate,
    PermanentRecordMissing,
)
from delivery.identifiers import canonical_id
from delivery.messaging.publisher import EventPublisher, decode_order_message
from delivery.notifier.port import PushPort
from delivery.order.order import OrderStatus
from delivery.storage.port import OrderStore
from delivery.worker.geo import coordinates_of, nearest

logger = structlog.get_logger(__name__)


@dataclass
class DispatchResult:
    order_id: str
    worker_id: str
    distance_km: float
    notified: bool


class WorkerDispatcher:
    def __init__(
        self,
        store: OrderStore,
        notifier: PushPort,
        publisher: EventPublisher,
        notification_title: str = "New delivery request",
        notification_body: str = "A new order is ready near you!",
    ):
        self._store = store
        self._notifier = notifier
        self._publisher = publisher
        self._title = notification_title
        self._body = notification_body

    async def handle_message(self, data: bytes | str) -> DispatchResult | None:
        """Entry point for transport deliveries on the order-ready topic."""
        try:
            payload = decode_order_message(data)
        except InvalidMessage as exc:
            logger.error("Invalid message payload", error=str(exc))
            return None

        return await self.dispatch(payload["orderId"])

    async def dispatch(self, order_id) -> DispatchResult | None:
        order_id = canonical_id(order_id)

        try:
            order = await self._store.get_order(order_id)
        except PermanentRecordMissing:
            logger.error("Order not found", order_id=order_id)
            return None
        except DeliveryError as exc:
            logger.error("Could not load order for dispatch", order_id=order_id, error=str(exc))
            return None

        if order.assigned_worker_id:
            logger.info(
                "Order already assigned, ignoring duplicate delivery",
                order_id=order_id,
                worker_id=str(order.assigned_worker_id),
            )
            return None

        if order.current_status != OrderStatus.READY:
            logger.info("Order is not ready for dispatch", order_id=order_id, status=order.status)
            return None

        origin = coordinates_of(order.customer_location)
        if origin is None:
            logger.error("Invalid customer location", order_id=order_id)
            return None

        try:
            workers = await self._store.list_available_workers()
        except DeliveryError as exc:
            logger.error("Could not load available workers", order_id=order_id, error=str(exc))
            return None

        try:
            match = nearest(origin={"latitude": origin[0], "longitude": origin[1]}, candidates=workers)
        except NoEligibleCandidate:
            logger.warning("No valid delivery workers", order_id=order_id, available=len(workers))
            return None

        worker = match.candidate
        event = order.record_assignment(worker.id, distance_km=round(match.distance_km, 3))

        try:
            claimed = await self._store.save_order_if_unchanged(order)
        except DeliveryError as exc:
            logger.error("Could not record assignment", order_id=order_id, error=str(exc))
            return None

        if not claimed:
            logger.info("Order claimed by a concurrent dispatch", order_id=order_id)
            return None

        notified = await self._notify(order_id, worker)

        try:
            await self._publisher.publish(event)
        except EventPublishError:
            # Already logged by the publisher; the assignment itself is recorded
            pass

        logger.info(
            "Delivery worker assigned",
            order_id=order_id,
            worker_id=str(worker.id),
            distance_km=round(match.distance_km, 3),
            notified=notified,
        )
        return DispatchResult(
            order_id=order_id,
            worker_id=str(worker.id),
            distance_km=match.distance_km,
            notified=notified,
        )

    async def _notify(self, order_id: str, worker) -> bool:
        if not worker.notification_address:
            logger.warning("No notification address for nearest worker", worker_id=str(worker.id))
            return False

        try:
            result = await self._notifier.send(
                address=worker.notification_address,
                title=self._title,
                body=self._body,
                data={"orderId": order_id},
            )
        except Exception as exc:
            logger.error("Notification failed", worker_id=str(worker.id), order_id=order_id, error=str(exc))
            return False

        if result.get("status") != "sent":
            logger.error(
                "Notification failed",
                worker_id=str(worker.id),
                order_id=order_id,
                error=result.get("error", "Unknown dispatch error"),
            )
            return False

        logger.info("Notification sent", worker_id=str(worker.id), message_id=result.get("message_id"))
        return True
