"""SubOrder aggregate — the vendor-scoped slice of a customer order.

Sub-orders are created when the cart is split per vendor and are advanced
by the vendor's fulfillment app. The delivery service only reads them to
decide whether the parent order is ready.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from delivery.domain import delivery


class SubOrderStatus(Enum):
    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    COMPLETED = "Completed"


# The vendor-ready sentinel used by the readiness predicate
READY_SENTINEL = SubOrderStatus.READY


def parse_sub_order_status(label: str, aliases: dict[str, str] | None = None) -> SubOrderStatus:
    """Translate a vendor app label into a SubOrderStatus.

    Deployments use their own wording (and language) for vendor statuses, so
    ``aliases`` maps those labels onto canonical values. Canonical values and
    member names are always accepted, case-insensitively.
    """
    text = (label or "").strip()
    if aliases and text in aliases:
        text = aliases[text]

    for status in SubOrderStatus:
        if text.lower() in (status.value.lower(), status.name.lower()):
            return status

    raise ValidationError({"status": [f"Unknown sub-order status: {label}"]})


@delivery.aggregate
class SubOrder:
    parent_order_id = Identifier(required=True)
    vendor_id = Identifier()
    status = String(
        choices=SubOrderStatus,
        default=SubOrderStatus.PENDING.value,
    )
    updated_at = DateTime()

    @classmethod
    def create(cls, sub_order_id, parent_order_id, status=SubOrderStatus.PENDING.value, vendor_id=None):
        return cls(
            id=sub_order_id,
            parent_order_id=parent_order_id,
            vendor_id=vendor_id,
            status=status,
            updated_at=datetime.now(UTC),
        )

    @property
    def current_status(self) -> SubOrderStatus:
        return SubOrderStatus(self.status)
