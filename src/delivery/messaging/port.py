"""Event transport port — abstract interface for publish/subscribe fan-out.

The transport is assumed to deliver at least once, in no particular order.
Consumers deduplicate on the order id carried in every payload.
"""

from abc import ABC, abstractmethod


class TransportPort(ABC):
    """Abstract interface for event transport adapters."""

    @abstractmethod
    async def publish(self, topic: str, payload: bytes) -> str:
        """Publish a UTF-8 JSON payload to a topic.

        Returns:
            The transport-assigned message id.

        Raises:
            Any exception when the transport did not accept the message.
        """
        ...
