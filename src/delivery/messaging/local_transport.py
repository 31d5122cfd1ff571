"""In-process transport adapter — records messages and fans them out locally.

Used in development and tests in place of a hosted pub/sub service.
Subscribers run after the message is recorded; a failing subscriber is
logged and does not fail the publish, like a separate consumer would.
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable
from uuid import uuid4

import structlog

from delivery.messaging.port import TransportPort

logger = structlog.get_logger(__name__)

Subscriber = Callable[[bytes], Awaitable[object]]


class LocalTransport(TransportPort):
    """Transport that keeps published messages in memory for inspection."""

    def __init__(self):
        self.published: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Transport unavailable"
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def configure(self, should_succeed: bool = True, failure_reason: str = "Transport unavailable"):
        """Configure the fake transport behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def subscribe(self, topic: str, subscriber: Subscriber):
        self._subscribers[topic].append(subscriber)

    async def publish(self, topic: str, payload: bytes) -> str:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        message_id = f"msg-{uuid4().hex[:12]}"
        self.published.append({"message_id": message_id, "topic": topic, "payload": payload})

        for subscriber in list(self._subscribers.get(topic, [])):
            try:
                await subscriber(payload)
            except Exception as exc:
                logger.error(
                    "Subscriber failed",
                    topic=topic,
                    message_id=message_id,
                    error=str(exc),
                )

        return message_id

    def messages_for(self, topic: str) -> list[dict]:
        return [message for message in self.published if message["topic"] == topic]

    def reset(self):
        """Clear recorded messages and restore default behavior."""
        self.published.clear()
        self.should_succeed = True
        self.failure_reason = "Transport unavailable"
