"""Push notification port — abstract interface for reaching a worker's device."""

from abc import ABC, abstractmethod


class PushPort(ABC):
    """Abstract interface for push notification dispatch adapters."""

    @abstractmethod
    async def send(
        self,
        address: str,
        title: str,
        body: str,
        data: dict | None = None,
    ) -> dict:
        """Send a push notification to a device address (push token).

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
