"""Service wiring for the delivery context.

``build_services`` assembles the components around one store, one transport
and one notifier. Callers (the FastAPI app, the sweep runner, the CLI,
tests) each build their own ``Services``; nothing is created at import time.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from delivery.config import Settings
from delivery.errors import IllegalTransition, PermanentRecordMissing, TransientStoreError
from delivery.identifiers import canonical_id
from delivery.messaging.local_transport import LocalTransport
from delivery.messaging.port import TransportPort
from delivery.messaging.publisher import EventPublisher
from delivery.notifier.fake_push import FakePushAdapter
from delivery.notifier.port import PushPort
from delivery.order.aggregation import SubOrderAggregator
from delivery.order.order import OrderStatus
from delivery.order.state_machine import OrderStateMachine, TransitionResult
from delivery.schedule.pending_transition import PendingTransition, TransitionKind
from delivery.schedule.scheduler import DelayedTransitionScheduler
from delivery.storage.port import OrderStore
from delivery.storage.repository_store import RepositoryStore
from delivery.sub_order.sub_order import SubOrder, parse_sub_order_status
from delivery.worker.dispatcher import WorkerDispatcher

logger = structlog.get_logger(__name__)


def build_transport(settings: Settings) -> TransportPort:
    """Return the transport adapter selected by ``TRANSPORT_ADAPTER``."""
    if settings.transport_adapter == "local":
        return LocalTransport()
    raise ValueError(f"Unknown transport adapter: {settings.transport_adapter}")


def build_notifier(settings: Settings) -> PushPort:
    """Return the push adapter selected by ``NOTIFIER_ADAPTER``."""
    if settings.notifier_adapter == "fake":
        return FakePushAdapter()
    raise ValueError(f"Unknown notifier adapter: {settings.notifier_adapter}")


@dataclass
class Services:
    settings: Settings
    store: OrderStore
    transport: TransportPort
    notifier: PushPort
    publisher: EventPublisher
    state_machine: OrderStateMachine
    aggregator: SubOrderAggregator
    scheduler: DelayedTransitionScheduler
    dispatcher: WorkerDispatcher

    async def write_sub_order(
        self, sub_order_id, status, parent_order_id=None, vendor_id=None
    ) -> tuple[SubOrder, TransitionResult | None]:
        """Record a vendor's sub-order status and re-evaluate the parent order.

        ``status`` may be a deployment-specific label; it is translated with
        the configured alias table before it is stored.
        """
        sub_order_id = canonical_id(sub_order_id)
        parsed = parse_sub_order_status(status, self.settings.sub_order_status_aliases)

        try:
            sub_order = await self.store.get_sub_order(sub_order_id)
            sub_order.status = parsed.value
            sub_order.updated_at = datetime.now(UTC)
        except PermanentRecordMissing:
            if parent_order_id is None:
                raise
            sub_order = SubOrder.create(
                sub_order_id=sub_order_id,
                parent_order_id=canonical_id(parent_order_id),
                status=parsed.value,
                vendor_id=vendor_id,
            )

        await self.store.save_sub_order(sub_order)
        logger.info(
            "Sub-order written",
            sub_order_id=sub_order_id,
            parent_order_id=str(sub_order.parent_order_id),
            status=parsed.value,
        )

        result = await self.aggregator.on_sub_order_written(parent_order_id=sub_order.parent_order_id)
        return sub_order, result

    async def order_created(self, order_id, due_at: datetime | None = None) -> PendingTransition | None:
        """Schedule the delivery start for a newly created order."""
        if due_at is None:
            due_at = datetime.now(UTC) + timedelta(seconds=self.settings.delivery_start_delay_seconds)
        return await self.scheduler.schedule(order_id, TransitionKind.START_DELIVERY, due_at)

    async def republish(self, order_id, reset_assignment: bool = False) -> str:
        """Publish ``orderReady`` again for a Ready order.

        With ``reset_assignment`` the recorded worker assignment is cleared
        first, so the dispatcher picks a worker afresh.
        """
        order_id = canonical_id(order_id)
        order = await self.store.get_order(order_id)
        if order.current_status != OrderStatus.READY:
            raise IllegalTransition(order_id, order.current_status, OrderStatus.READY)

        if reset_assignment and order.assigned_worker_id:
            previous = str(order.assigned_worker_id)
            order.clear_assignment()
            if not await self.store.save_order_if_unchanged(order):
                raise TransientStoreError(f"Order {order_id} changed concurrently, retry again")
            logger.info("Assignment cleared for re-dispatch", order_id=order_id, previous_worker_id=previous)

        return await self.publisher.republish_order_ready(order_id)


def build_services(
    domain,
    settings: Settings | None = None,
    store: OrderStore | None = None,
    transport: TransportPort | None = None,
    notifier: PushPort | None = None,
) -> Services:
    settings = settings or Settings.from_env()
    store = store or RepositoryStore(domain, query_limit=settings.worker_query_limit)
    transport = transport or build_transport(settings)
    notifier = notifier or build_notifier(settings)

    publisher = EventPublisher(
        transport,
        order_ready_topic=settings.order_ready_topic,
        assignment_topic=settings.assignment_topic,
        delivery_started_topic=settings.delivery_started_topic,
    )
    state_machine = OrderStateMachine(store, publisher)
    dispatcher = WorkerDispatcher(
        store,
        notifier,
        publisher,
        notification_title=settings.worker_notification_title,
        notification_body=settings.worker_notification_body,
    )

    # In-process transport: dispatch ready orders directly
    if isinstance(transport, LocalTransport):
        transport.subscribe(settings.order_ready_topic, dispatcher.handle_message)

    return Services(
        settings=settings,
        store=store,
        transport=transport,
        notifier=notifier,
        publisher=publisher,
        state_machine=state_machine,
        aggregator=SubOrderAggregator(store, state_machine),
        scheduler=DelayedTransitionScheduler(
            store,
            state_machine,
            apply_timeout=settings.apply_timeout_seconds,
            max_attempts=settings.max_transition_attempts,
            batch_size=settings.sweep_batch_size,
        ),
        dispatcher=dispatcher,
    )
