"""Event Publisher — turns committed domain events into transport messages.

Publishing happens after the state change is committed. A transport failure
is logged and reported to the caller, but never undoes the transition: the
stored order status is the source of truth, and redelivery is the
transport's job.
"""

import base64
import binascii
import json

import structlog

from delivery.errors import EventPublishError, InvalidIdentifier, InvalidMessage
from delivery.identifiers import canonical_id
from delivery.messaging.port import TransportPort
from delivery.order.events import AssignmentRequested, DeliveryStarted, OrderReady

logger = structlog.get_logger(__name__)


def encode_payload(data: dict) -> bytes:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_order_message(data: bytes | str) -> dict:
    """Decode a transport payload into a dict with a canonical ``orderId``.

    Accepts the raw JSON bytes, or the base64 text a push subscription
    delivers in ``message.data``.
    """
    if isinstance(data, str):
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidMessage(f"Invalid base64 payload: {exc}") from exc

    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidMessage(f"Invalid message payload: {exc}") from exc

    if not isinstance(payload, dict) or payload.get("orderId") in (None, ""):
        raise InvalidMessage("Missing orderId in payload")

    try:
        payload["orderId"] = canonical_id(payload["orderId"])
    except InvalidIdentifier as exc:
        raise InvalidMessage(str(exc)) from exc

    return payload


class EventPublisher:
    """Maps domain events to topics and JSON payloads."""

    def __init__(
        self,
        transport: TransportPort,
        order_ready_topic: str = "orderReady",
        assignment_topic: str = "assignmentRequested",
        delivery_started_topic: str = "deliveryStarted",
    ):
        self._transport = transport
        self._routes = {
            OrderReady: (order_ready_topic, lambda e: {"orderId": str(e.order_id)}),
            DeliveryStarted: (delivery_started_topic, lambda e: {"orderId": str(e.order_id)}),
            AssignmentRequested: (
                assignment_topic,
                lambda e: {"orderId": str(e.order_id), "workerId": str(e.worker_id)},
            ),
        }
        self.order_ready_topic = order_ready_topic

    async def publish(self, event) -> str:
        route = self._routes.get(type(event))
        if route is None:
            raise ValueError(f"No topic configured for {type(event).__name__}")

        topic, to_payload = route
        return await self._send(topic, to_payload(event))

    async def republish_order_ready(self, order_id) -> str:
        """Publish ``orderReady`` again for an order, for operator recovery."""
        return await self._send(self.order_ready_topic, {"orderId": canonical_id(order_id)})

    async def _send(self, topic: str, data: dict) -> str:
        try:
            message_id = await self._transport.publish(topic, encode_payload(data))
        except Exception as exc:
            logger.error("Publish failed", topic=topic, payload=data, error=str(exc))
            raise EventPublishError(f"Could not publish to {topic}: {exc}") from exc

        logger.info("Published event", topic=topic, payload=data, message_id=message_id)
        return message_id
