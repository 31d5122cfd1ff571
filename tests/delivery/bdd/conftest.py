"""Shared BDD fixtures and step definitions for the delivery scenarios."""

import asyncio
from datetime import UTC, datetime

import pytest
from delivery.order.order import Order
from delivery.sub_order.sub_order import SubOrder
from delivery.worker.worker import DeliveryWorker, WorkerAvailability
from pytest_bdd import given, parsers, then

KM_PER_DEGREE = 111.195


@pytest.fixture()
def ctx(services):
    """Scenario state: the live services plus what the steps created."""
    return {
        "services": services,
        "now": datetime.now(UTC),
        "order_id": None,
        "workers": {},
        "transition": None,
    }


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an order "{order_id}" in "{status}" status'))
def order_in_status(ctx, order_id, status):
    order = Order.create(
        order_id=order_id,
        customer_location={"latitude": 0.0, "longitude": 0.0},
        status=status,
    )
    asyncio.run(ctx["services"].store.add_order(order))
    ctx["order_id"] = order_id


@given(parsers.cfparse('the order has {count:d} sub-orders in "{status}" status'))
def sub_orders_in_status(ctx, count, status):
    for index in range(1, count + 1):
        sub_order = SubOrder.create(
            sub_order_id=f"so-{ctx['order_id']}-{index}",
            parent_order_id=ctx["order_id"],
            status=status,
            vendor_id=f"vendor-{index}",
        )
        asyncio.run(ctx["services"].store.save_sub_order(sub_order))


@given(parsers.cfparse('an available worker "{name}" {km:g} km from the customer'))
def available_worker(ctx, name, km):
    worker = DeliveryWorker(
        name=name,
        latitude=km / KM_PER_DEGREE,
        longitude=0.0,
        availability=WorkerAvailability.AVAILABLE.value,
        notification_address=f"token-{name.lower()}",
    )
    asyncio.run(ctx["services"].store.add_worker(worker))
    ctx["workers"][name] = worker


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(ctx, status):
    order = asyncio.run(ctx["services"].store.get_order(ctx["order_id"]))
    assert order.status == status


@then(parsers.cfparse('exactly {count:d} "{topic}" event is published'))
def events_published(ctx, count, topic):
    assert len(ctx["services"].transport.messages_for(topic)) == count
