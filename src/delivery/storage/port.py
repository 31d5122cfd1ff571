"""Order store port — the storage collaborator the delivery services need.

Every "exactly once" guarantee in the delivery services reduces to the two
conditional writes on this interface:

- ``save_order_if_unchanged`` / ``save_transition_if_unchanged`` persist a
  record only if nobody else saved it since it was loaded (its ``revision``
  still matches the stored one).
- ``add_transition_if_absent`` inserts a pending transition only if no
  non-completed record exists for the same ``(order_id, kind)``.

Identifiers are accepted in numeric or string form and normalized with
``canonical_id`` at this boundary.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class OrderStore(ABC):
    """Abstract interface for order, sub-order, worker and transition storage."""

    # Orders -------------------------------------------------------------
    @abstractmethod
    async def get_order(self, order_id):
        """Return the Order. Raises PermanentRecordMissing if absent."""
        ...

    @abstractmethod
    async def add_order(self, order) -> None: ...

    @abstractmethod
    async def save_order_if_unchanged(self, order) -> bool:
        """Persist ``order`` if its revision matches storage. Returns False on conflict."""
        ...

    # Sub-orders ---------------------------------------------------------
    @abstractmethod
    async def get_sub_order(self, sub_order_id): ...

    @abstractmethod
    async def save_sub_order(self, sub_order) -> None: ...

    @abstractmethod
    async def list_sub_orders(self, parent_order_id) -> list:
        """Return every sub-order whose parent is ``parent_order_id``."""
        ...

    # Workers ------------------------------------------------------------
    @abstractmethod
    async def add_worker(self, worker) -> None: ...

    @abstractmethod
    async def list_available_workers(self) -> list:
        """Return workers whose availability is Available."""
        ...

    # Pending transitions ------------------------------------------------
    @abstractmethod
    async def add_transition_if_absent(self, transition) -> bool:
        """Insert ``transition`` unless a non-completed one exists for its (order, kind)."""
        ...

    @abstractmethod
    async def get_transition(self, transition_id): ...

    @abstractmethod
    async def due_transitions(self, as_of: datetime, limit: int) -> list:
        """Return pending transitions due at ``as_of``, oldest due time first."""
        ...

    @abstractmethod
    async def list_transitions(self, state: str) -> list: ...

    @abstractmethod
    async def save_transition_if_unchanged(self, transition) -> bool: ...
