"""Runtime settings for the delivery services.

Protean providers and brokers are configured in ``domain.toml``. Everything
the services themselves need (sweep cadence, retry ceiling, topic names,
adapter selection) is read from the environment once, into a frozen
``Settings`` object that is passed to ``build_services``.
"""

import json
import os
from dataclasses import dataclass, field


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _aliases(name: str) -> dict[str, str]:
    raw = os.environ.get(name)
    if not raw:
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"{name} must be a JSON object mapping labels to statuses")
    return {str(label): str(status) for label, status in parsed.items()}


@dataclass(frozen=True)
class Settings:
    sweep_interval_seconds: float = 60.0
    apply_timeout_seconds: float = 10.0
    max_transition_attempts: int = 5
    sweep_batch_size: int = 500
    worker_query_limit: int = 1000
    delivery_start_delay_seconds: float = 1800.0

    order_ready_topic: str = "orderReady"
    assignment_topic: str = "assignmentRequested"
    delivery_started_topic: str = "deliveryStarted"

    worker_notification_title: str = "New delivery request"
    worker_notification_body: str = "A new order is ready near you!"

    # Deployment-specific vendor labels -> SubOrderStatus values
    sub_order_status_aliases: dict[str, str] = field(default_factory=dict)

    notifier_adapter: str = "fake"
    transport_adapter: str = "local"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            sweep_interval_seconds=_float("SWEEP_INTERVAL_SECONDS", 60.0),
            apply_timeout_seconds=_float("APPLY_TIMEOUT_SECONDS", 10.0),
            max_transition_attempts=_int("MAX_TRANSITION_ATTEMPTS", 5),
            sweep_batch_size=_int("SWEEP_BATCH_SIZE", 500),
            worker_query_limit=_int("WORKER_QUERY_LIMIT", 1000),
            delivery_start_delay_seconds=_float("DELIVERY_START_DELAY_SECONDS", 1800.0),
            order_ready_topic=os.environ.get("ORDER_READY_TOPIC", "orderReady"),
            assignment_topic=os.environ.get("ASSIGNMENT_TOPIC", "assignmentRequested"),
            delivery_started_topic=os.environ.get("DELIVERY_STARTED_TOPIC", "deliveryStarted"),
            worker_notification_title=os.environ.get("WORKER_NOTIFICATION_TITLE", "New delivery request"),
            worker_notification_body=os.environ.get("WORKER_NOTIFICATION_BODY", "A new order is ready near you!"),
            sub_order_status_aliases=_aliases("SUB_ORDER_STATUS_ALIASES"),
            notifier_adapter=os.environ.get("NOTIFIER_ADAPTER", "fake"),
            transport_adapter=os.environ.get("TRANSPORT_ADAPTER", "local"),
        )
