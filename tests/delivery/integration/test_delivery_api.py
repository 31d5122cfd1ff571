"""Integration tests for the delivery trigger and operator endpoints."""

import asyncio
import base64
import json
from datetime import UTC, datetime, timedelta

import pytest
from delivery.api import install_error_handlers, router
from delivery.domain import delivery
from delivery.order.order import OrderStatus
from delivery.schedule.pending_transition import TransitionState
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def client(services):
    """Minimal FastAPI app with the delivery routes and the test services."""
    app = FastAPI()
    app.state.services = services

    @app.middleware("http")
    async def domain_context_middleware(request, call_next):
        with delivery.domain_context():
            return await call_next(request)

    install_error_handlers(app)
    app.include_router(router)
    return TestClient(app)


def _push_body(payload: dict) -> dict:
    data = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
    return {
        "message": {"data": data, "messageId": "m-1"},
        "subscription": "projects/demo/subscriptions/order-ready",
    }


# ---------------------------------------------------------------
# Store write triggers
# ---------------------------------------------------------------
class TestSubOrderWrittenTrigger:
    def test_advances_parent(self, client, transport, seed_order, seed_sub_orders):
        seed_order(order_id="1042")
        seed_sub_orders(parent_order_id="1042", statuses=("Ready", "Ready"))

        resp = client.post("/triggers/sub-order-written", json={"sub_order_id": "so-1042-2"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["applied"] is True
        assert data["published"] is True
        assert data["target"] == "Ready"
        assert len(transport.messages_for("orderReady")) == 1

    def test_not_ready_yet(self, client, seed_order, seed_sub_orders):
        seed_order(order_id="1042")
        seed_sub_orders(parent_order_id="1042", statuses=("Ready", "Preparing"))

        resp = client.post("/triggers/sub-order-written", json={"parent_order_id": 1042})

        assert resp.status_code == 200
        assert resp.json()["applied"] is False

    def test_requires_an_identifier(self, client):
        resp = client.post("/triggers/sub-order-written", json={})
        assert resp.status_code == 422

    def test_created_parent_is_not_advanced(self, client, seed_order, seed_sub_orders):
        seed_order(order_id="1042", status=OrderStatus.CREATED.value)
        seed_sub_orders(parent_order_id="1042", statuses=("Ready",))

        resp = client.post("/triggers/sub-order-written", json={"parent_order_id": "1042"})

        assert resp.status_code == 200
        assert resp.json()["applied"] is False


class TestOrderCreatedTrigger:
    def test_schedules_start_delivery(self, client):
        due_at = (datetime.now(UTC) + timedelta(minutes=30)).isoformat()

        resp = client.post("/triggers/order-created", json={"order_id": 1042, "due_at": due_at})

        assert resp.status_code == 200
        data = resp.json()
        assert data["scheduled"] is True
        assert data["transition"]["order_id"] == "1042"
        assert data["transition"]["kind"] == "StartDelivery"
        assert data["transition"]["state"] == "Pending"

    def test_duplicate_is_reported(self, client):
        body = {"order_id": "1042", "due_at": "2026-01-15T14:30:00Z"}
        client.post("/triggers/order-created", json=body)

        resp = client.post("/triggers/order-created", json=body)

        assert resp.status_code == 200
        assert resp.json() == {"scheduled": False, "transition": None}

    def test_invalid_identifier(self, client):
        resp = client.post("/triggers/order-created", json={"order_id": "   "})
        assert resp.status_code == 422


class TestSweepTrigger:
    def test_sweeps_due_transitions(self, client, store, seed_order):
        seed_order(order_id="1042", status=OrderStatus.DISPATCHING.value)
        client.post(
            "/triggers/order-created",
            json={"order_id": "1042", "due_at": (datetime.now(UTC) - timedelta(seconds=1)).isoformat()},
        )

        resp = client.post("/triggers/sweep")

        assert resp.status_code == 200
        data = resp.json()
        assert data["processed"] == 1
        assert len(data["completed"]) == 1
        assert asyncio.run(store.get_order("1042")).status == OrderStatus.IN_DELIVERY.value

    def test_as_of(self, client, seed_order):
        seed_order(order_id="1042", status=OrderStatus.DISPATCHING.value)
        client.post("/triggers/order-created", json={"order_id": "1042", "due_at": "2030-01-01T00:00:00Z"})

        early = client.post("/triggers/sweep", json={"as_of": "2029-12-31T23:59:59Z"})
        late = client.post("/triggers/sweep", json={"as_of": "2030-01-01T00:00:01Z"})

        assert early.json()["processed"] == 0
        assert len(late.json()["completed"]) == 1


# ---------------------------------------------------------------
# Pub/sub push delivery
# ---------------------------------------------------------------
class TestPushEndpoint:
    def test_dispatches_nearest_worker(self, client, notifier, seed_order, worker_km_north):
        seed_order(order_id="1042", status=OrderStatus.READY.value)
        near = worker_km_north(2.0, notification_address="near")
        worker_km_north(5.0, notification_address="far")

        resp = client.post("/events/push", json=_push_body({"orderId": 1042}))

        assert resp.status_code == 200
        data = resp.json()
        assert data["dispatched"] is True
        assert data["worker_id"] == str(near.id)
        assert [p.address for p in notifier.for_order("1042")] == ["near"]

    def test_undecodable_message_is_acknowledged(self, client, notifier):
        resp = client.post("/events/push", json={"message": {"data": "%%%"}})

        assert resp.status_code == 200
        assert resp.json()["dispatched"] is False
        assert notifier.sent_pushes == []

    def test_malformed_envelope(self, client):
        resp = client.post("/events/push", json={"data": "abc"})
        assert resp.status_code == 422


# ---------------------------------------------------------------
# Vendor writes
# ---------------------------------------------------------------
class TestWriteSubOrderEndpoint:
    def test_write_advances_parent_and_dispatches(self, client, transport, notifier, seed_order, worker_km_north):
        seed_order(order_id="1042")
        worker_km_north(2.0)

        resp = client.put("/sub-orders/so-1", json={"status": "Ready", "parent_order_id": "1042"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["parent_order_id"] == "1042"
        assert data["status"] == "Ready"
        assert data["transition"]["applied"] is True
        assert len(transport.messages_for("orderReady")) == 1
        assert len(notifier.sent_pushes) == 1

    def test_unknown_status(self, client, seed_order):
        seed_order(order_id="1042")

        resp = client.put("/sub-orders/so-1", json={"status": "Shipped", "parent_order_id": "1042"})

        assert resp.status_code == 422

    def test_unknown_sub_order_without_parent(self, client):
        resp = client.put("/sub-orders/so-404", json={"status": "Ready"})
        assert resp.status_code == 404


# ---------------------------------------------------------------
# Operator endpoints
# ---------------------------------------------------------------
class TestOperatorEndpoints:
    def _failed_transition(self, client, seed_order):
        seed_order(order_id="1042", status=OrderStatus.CANCELLED.value)
        client.post(
            "/triggers/order-created",
            json={"order_id": "1042", "due_at": (datetime.now(UTC) - timedelta(seconds=1)).isoformat()},
        )
        client.post("/triggers/sweep")

    def test_list_failed(self, client, seed_order):
        self._failed_transition(client, seed_order)

        resp = client.get("/transitions", params={"state": "Failed"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["items"][0]["order_id"] == "1042"
        assert data["items"][0]["state"] == TransitionState.FAILED.value
        assert "cannot transition" in data["items"][0]["last_error"]

    def test_list_defaults_to_failed(self, client):
        resp = client.get("/transitions")
        assert resp.status_code == 200
        assert resp.json() == {"items": [], "total": 0}

    def test_list_unknown_state(self, client):
        resp = client.get("/transitions", params={"state": "Lost"})
        assert resp.status_code == 422

    def test_retry(self, client, seed_order):
        self._failed_transition(client, seed_order)
        transition_id = client.get("/transitions").json()["items"][0]["transition_id"]

        resp = client.post(f"/transitions/{transition_id}/retry")

        assert resp.status_code == 200
        assert resp.json()["state"] == "Pending"
        assert resp.json()["attempts"] == 0

    def test_retry_pending_is_rejected(self, client):
        created = client.post(
            "/triggers/order-created",
            json={"order_id": "1042", "due_at": "2030-01-01T00:00:00Z"},
        ).json()

        resp = client.post(f"/transitions/{created['transition']['transition_id']}/retry")

        assert resp.status_code == 422

    def test_retry_unknown(self, client):
        resp = client.post("/transitions/does-not-exist/retry")
        assert resp.status_code == 404

    def test_republish(self, client, transport, seed_order):
        seed_order(order_id="1042", status=OrderStatus.READY.value)

        resp = client.post("/orders/01042/republish")

        assert resp.status_code == 200
        assert resp.json()["order_id"] == "1042"
        assert resp.json()["message_id"].startswith("msg-")
        assert len(transport.messages_for("orderReady")) == 1

    def test_republish_transport_down(self, client, transport, seed_order):
        seed_order(order_id="1042", status=OrderStatus.READY.value)
        transport.configure(should_succeed=False)

        resp = client.post("/orders/1042/republish")

        assert resp.status_code == 503

    def test_republish_not_ready(self, client, seed_order):
        seed_order(order_id="1042", status=OrderStatus.PREPARING.value)
        resp = client.post("/orders/1042/republish")
        assert resp.status_code == 409

    def test_republish_missing(self, client):
        resp = client.post("/orders/404/republish")
        assert resp.status_code == 404
