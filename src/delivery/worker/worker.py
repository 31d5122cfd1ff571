"""DeliveryWorker aggregate — a courier as reported by the worker app.

Location and availability are written by the courier's own device, so the
coordinates are stored as received and may be missing or malformed. The
delivery service only reads workers.
"""

from enum import Enum

from protean.fields import DateTime, Float, String

from delivery.domain import delivery


class WorkerAvailability(Enum):
    AVAILABLE = "Available"
    BUSY = "Busy"
    OFFLINE = "Offline"


@delivery.aggregate
class DeliveryWorker:
    name = String(max_length=200)
    latitude = Float()
    longitude = Float()
    availability = String(
        choices=WorkerAvailability,
        default=WorkerAvailability.OFFLINE.value,
    )
    # Push token of the worker's device
    notification_address = String(max_length=500)
    location_updated_at = DateTime()
