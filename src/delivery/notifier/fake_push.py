"""Fake push adapter — an in-memory stand-in for the courier app's push channel.

Every accepted push is kept as a ``SentPush`` carrying the order it is
about, so tests can ask which worker was asked to pick up which order.
Individual device tokens can be expired to exercise failed sends.
"""

from dataclasses import dataclass
from uuid import uuid4

from delivery.notifier.port import PushPort


@dataclass(frozen=True)
class SentPush:
    message_id: str
    address: str
    title: str
    body: str
    order_id: str | None = None


class FakePushAdapter(PushPort):
    def __init__(self):
        self.sent_pushes: list[SentPush] = []
        self._expired: dict[str, str] = {}

    def expire_token(self, address: str, reason: str = "Push token expired"):
        """Make every later send to ``address`` fail with ``reason``."""
        self._expired[address] = reason

    async def send(
        self,
        address: str,
        title: str,
        body: str,
        data: dict | None = None,
    ) -> dict:
        if address in self._expired:
            return {"message_id": None, "status": "failed", "error": self._expired[address]}

        push = SentPush(
            message_id=f"push-{uuid4().hex[:12]}",
            address=address,
            title=title,
            body=body,
            order_id=(data or {}).get("orderId"),
        )
        self.sent_pushes.append(push)
        return {"message_id": push.message_id, "status": "sent"}

    def sent_to(self, address: str) -> list[SentPush]:
        return [push for push in self.sent_pushes if push.address == address]

    def for_order(self, order_id) -> list[SentPush]:
        return [push for push in self.sent_pushes if push.order_id == str(order_id)]
