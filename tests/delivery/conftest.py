"""Shared fixtures and seeding helpers for the delivery tests.

Services are async; tests stay synchronous and drive them with
``asyncio.run`` one call at a time.
"""

import asyncio
from datetime import UTC, datetime

import pytest
from delivery.config import Settings
from delivery.domain import delivery
from delivery.messaging.local_transport import LocalTransport
from delivery.messaging.publisher import EventPublisher
from delivery.notifier.fake_push import FakePushAdapter
from delivery.order.order import Order, OrderStatus
from delivery.order.state_machine import OrderStateMachine
from delivery.services import build_services
from delivery.storage.repository_store import RepositoryStore
from delivery.sub_order.sub_order import SubOrder, SubOrderStatus
from delivery.worker.worker import DeliveryWorker, WorkerAvailability

# One degree of latitude on a 6371 km sphere is ~111.195 km
KM_PER_DEGREE = 111.195


class YieldingStore:
    """Wraps a store and yields to the event loop after every read.

    Lets two coroutines gathered on one loop both load a record before
    either of them writes, which is the interleaving a real race produces.
    """

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def get_order(self, order_id):
        order = await self._inner.get_order(order_id)
        await asyncio.sleep(0)
        return order

    async def get_transition(self, transition_id):
        transition = await self._inner.get_transition(transition_id)
        await asyncio.sleep(0)
        return transition


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def store():
    return RepositoryStore(delivery)


@pytest.fixture
def transport():
    return LocalTransport()


@pytest.fixture
def notifier():
    return FakePushAdapter()


@pytest.fixture
def publisher(transport):
    return EventPublisher(transport)


@pytest.fixture
def state_machine(store, publisher):
    return OrderStateMachine(store, publisher)


@pytest.fixture
def services(settings, store, transport, notifier):
    return build_services(delivery, settings=settings, store=store, transport=transport, notifier=notifier)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def yielding_store(store):
    return YieldingStore(store)


@pytest.fixture
def seed_order(store):
    return lambda **kwargs: _seed_order(store, **kwargs)


@pytest.fixture
def seed_sub_orders(store):
    return lambda **kwargs: _seed_sub_orders(store, **kwargs)


@pytest.fixture
def set_order_status(store):
    """Apply a status edge the way the customer, vendor or courier apps do."""
    return lambda order_id, status: _set_order_status(store, order_id, status)


@pytest.fixture
def seed_worker(store):
    return lambda **kwargs: _seed_worker(store, **kwargs)


@pytest.fixture
def worker_km_north(store):
    """Seed a worker the given number of kilometres north of (0, 0)."""
    return lambda km, **kwargs: _seed_worker(store, latitude=km / KM_PER_DEGREE, longitude=0.0, **kwargs)


def _seed_order(
    store,
    order_id="1042",
    status=OrderStatus.PREPARING.value,
    customer_location=None,
):
    if customer_location is None:
        customer_location = {"latitude": 0.0, "longitude": 0.0}
    order = Order.create(order_id=order_id, customer_location=customer_location, status=status)
    run(store.add_order(order))
    return order


def _set_order_status(store, order_id, status):
    order = run(store.get_order(order_id))
    order.status = status
    assert run(store.save_order_if_unchanged(order))
    return order


def _seed_sub_orders(store, parent_order_id="1042", statuses=(SubOrderStatus.PENDING.value,)):
    sub_orders = []
    for index, status in enumerate(statuses, start=1):
        sub_order = SubOrder.create(
            sub_order_id=f"so-{parent_order_id}-{index}",
            parent_order_id=parent_order_id,
            status=status,
            vendor_id=f"vendor-{index}",
        )
        run(store.save_sub_order(sub_order))
        sub_orders.append(sub_order)
    return sub_orders


def _seed_worker(
    store,
    name="Asha",
    latitude=0.0,
    longitude=0.0,
    availability=WorkerAvailability.AVAILABLE.value,
    notification_address="device-token",
):
    worker = DeliveryWorker(
        name=name,
        latitude=latitude,
        longitude=longitude,
        availability=availability,
        notification_address=notification_address,
        location_updated_at=datetime.now(UTC),
    )
    run(store.add_worker(worker))
    return worker

