"""OrderStore backed by Protean repositories.

Whatever provider the domain is configured with (memory in tests, a
database in production) sits behind ``domain.repository_for``. Each call
runs inside its own domain context so it works from any task or thread.

Conditional saves compare the ``revision`` counter of the loaded record with
the stored one. The compare and the write happen without yielding to the
event loop, so two coroutines in one process cannot interleave between
them; across processes the provider's transaction isolation has to back it.
"""

from contextlib import contextmanager

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from delivery.errors import DeliveryError, PermanentRecordMissing, TransientStoreError
from delivery.identifiers import canonical_id
from delivery.order.order import Order
from delivery.schedule.pending_transition import PendingTransition, TransitionState
from delivery.storage.port import OrderStore
from delivery.sub_order.sub_order import SubOrder
from delivery.worker.worker import DeliveryWorker, WorkerAvailability

logger = structlog.get_logger(__name__)


class RepositoryStore(OrderStore):
    def __init__(self, domain, query_limit: int = 1000):
        self._domain = domain
        self._query_limit = query_limit

    @contextmanager
    def _session(self):
        """Push a domain context and translate backend errors."""
        with self._domain.domain_context():
            try:
                yield
            except (DeliveryError, ValidationError):
                raise
            except Exception as exc:
                logger.error("Store operation failed", error=str(exc))
                raise TransientStoreError(str(exc)) from exc

    def _repo(self, aggregate_cls):
        return self._domain.repository_for(aggregate_cls)

    def _get(self, aggregate_cls, record_id):
        try:
            return self._repo(aggregate_cls).get(record_id)
        except ObjectNotFoundError as exc:
            raise PermanentRecordMissing(aggregate_cls.__name__, record_id) from exc

    def _save_if_unchanged(self, aggregate_cls, record) -> bool:
        stored = self._get(aggregate_cls, str(record.id))
        if (stored.revision or 0) != (record.revision or 0):
            logger.info(
                "Conditional save lost",
                record_type=aggregate_cls.__name__,
                record_id=str(record.id),
                expected_revision=record.revision,
                stored_revision=stored.revision,
            )
            return False

        record.revision = (record.revision or 0) + 1
        self._repo(aggregate_cls).add(record)
        return True

    # Orders -------------------------------------------------------------
    async def get_order(self, order_id):
        with self._session():
            return self._get(Order, canonical_id(order_id))

    async def add_order(self, order) -> None:
        with self._session():
            self._repo(Order).add(order)

    async def save_order_if_unchanged(self, order) -> bool:
        with self._session():
            return self._save_if_unchanged(Order, order)

    # Sub-orders ---------------------------------------------------------
    async def get_sub_order(self, sub_order_id):
        with self._session():
            return self._get(SubOrder, canonical_id(sub_order_id))

    async def save_sub_order(self, sub_order) -> None:
        sub_order.parent_order_id = canonical_id(sub_order.parent_order_id)
        with self._session():
            self._repo(SubOrder).add(sub_order)

    async def list_sub_orders(self, parent_order_id) -> list:
        with self._session():
            results = (
                self._repo(SubOrder)
                ._dao.query.filter(parent_order_id=canonical_id(parent_order_id))
                .limit(self._query_limit)
                .all()
            )
            return list(results.items)

    # Workers ------------------------------------------------------------
    async def add_worker(self, worker) -> None:
        with self._session():
            self._repo(DeliveryWorker).add(worker)

    async def list_available_workers(self) -> list:
        with self._session():
            results = (
                self._repo(DeliveryWorker)
                ._dao.query.filter(availability=WorkerAvailability.AVAILABLE.value)
                .limit(self._query_limit)
                .all()
            )
            return list(results.items)

    # Pending transitions ------------------------------------------------
    async def add_transition_if_absent(self, transition) -> bool:
        transition.order_id = canonical_id(transition.order_id)
        with self._session():
            repo = self._repo(PendingTransition)
            existing = repo._dao.query.filter(order_id=transition.order_id, kind=transition.kind).all().items
            if any(record.is_active for record in existing):
                return False

            repo.add(transition)
            return True

    async def get_transition(self, transition_id):
        with self._session():
            return self._get(PendingTransition, str(transition_id))

    async def due_transitions(self, as_of, limit: int) -> list:
        with self._session():
            pending = (
                self._repo(PendingTransition)
                ._dao.query.filter(state=TransitionState.PENDING.value)
                .order_by("due_at")
                .limit(limit)
                .all()
                .items
            )
            return [record for record in pending if record.is_due(as_of)]

    async def list_transitions(self, state: str) -> list:
        with self._session():
            results = (
                self._repo(PendingTransition)
                ._dao.query.filter(state=state)
                .order_by("due_at")
                .limit(self._query_limit)
                .all()
            )
            return list(results.items)

    async def save_transition_if_unchanged(self, transition) -> bool:
        with self._session():
            return self._save_if_unchanged(PendingTransition, transition)
