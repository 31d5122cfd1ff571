"""Delayed Transition Scheduler — durable timers for order status changes.

``schedule`` only writes a PendingTransition record. A recurring ``sweep``
(one tick per interval, from the background runner or an external cron
hitting the trigger endpoint) finds due records and applies them. Because
the record is the timer, a process that dies between scheduling and due
time loses nothing, and a sweep that dies mid-record is simply repeated:
re-applying an order transition and re-completing a record are both no-ops.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from delivery.errors import IllegalTransition, PermanentRecordMissing, TransientStoreError
from delivery.identifiers import canonical_id
from delivery.order.order import TERMINAL_STATES, has_reached
from delivery.order.state_machine import OrderStateMachine
from delivery.schedule.pending_transition import (
    PendingTransition,
    TransitionKind,
    TransitionState,
    as_utc,
)
from delivery.storage.port import OrderStore

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    as_of: datetime
    completed: list[str] = field(default_factory=list)
    retrying: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.completed) + len(self.retrying) + len(self.failed)


class DelayedTransitionScheduler:
    def __init__(
        self,
        store: OrderStore,
        state_machine: OrderStateMachine,
        apply_timeout: float = 10.0,
        max_attempts: int = 5,
        batch_size: int = 500,
    ):
        self._store = store
        self._state_machine = state_machine
        self._apply_timeout = apply_timeout
        self._max_attempts = max_attempts
        self._batch_size = batch_size

    # -------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------
    async def schedule(self, order_id, kind, due_at: datetime) -> PendingTransition | None:
        """Register a delayed transition. Returns None if one is already active."""
        order_id = canonical_id(order_id)
        kind = TransitionKind(kind)

        transition = PendingTransition.create(
            order_id=order_id,
            kind=kind.value,
            due_at=due_at,
            max_attempts=self._max_attempts,
        )

        if not await self._store.add_transition_if_absent(transition):
            logger.info(
                "Transition already scheduled, ignoring duplicate",
                order_id=order_id,
                kind=kind.value,
            )
            return None

        logger.info(
            "Transition scheduled",
            transition_id=str(transition.id),
            order_id=order_id,
            kind=kind.value,
            due_at=str(transition.due_at),
        )
        return transition

    # -------------------------------------------------------------------
    # Sweep
    # -------------------------------------------------------------------
    async def sweep(self, as_of: datetime | None = None) -> SweepReport:
        """Apply every pending transition due at ``as_of`` (defaults to now)."""
        as_of = as_utc(as_of or datetime.now(UTC))
        report = SweepReport(as_of=as_of)

        due = await self._store.due_transitions(as_of, self._batch_size)

        for transition in due:
            transition_id = str(transition.id)
            try:
                await asyncio.wait_for(self._apply(transition), timeout=self._apply_timeout)
                report.completed.append(transition_id)
            except TimeoutError:
                await self._record_failure(transition, f"Timed out after {self._apply_timeout}s", report)
            except IllegalTransition as exc:
                await self._handle_illegal(transition, exc, report)
            except (PermanentRecordMissing, TransientStoreError) as exc:
                await self._record_failure(transition, str(exc), report)
            except Exception as exc:
                logger.exception("Unexpected error applying transition", transition_id=transition_id)
                await self._record_failure(transition, f"{type(exc).__name__}: {exc}", report)

        logger.info(
            "Sweep finished",
            as_of=str(as_of),
            due=len(due),
            completed=len(report.completed),
            retrying=len(report.retrying),
            failed=len(report.failed),
        )
        return report

    async def _apply(self, transition: PendingTransition):
        result = await self._state_machine.transition(transition.order_id, transition.target_status)
        if result.publish_error:
            logger.warning(
                "Transition applied but event not published",
                transition_id=str(transition.id),
                order_id=str(transition.order_id),
                error=result.publish_error,
            )

        if transition.mark_completed():
            if not await self._store.save_transition_if_unchanged(transition):
                logger.info("Transition completed by another sweep", transition_id=str(transition.id))

    async def _handle_illegal(self, transition, exc: IllegalTransition, report: SweepReport):
        # An order that has not reached the predecessor state yet may still get there
        if exc.current not in TERMINAL_STATES and not has_reached(exc.current, exc.target):
            await self._record_failure(transition, f"Order not ready for transition: {exc}", report)
        else:
            await self._record_failure(transition, str(exc), report, permanent=True)

    async def _record_failure(self, transition, reason: str, report: SweepReport, permanent: bool = False):
        """Count a failed attempt against the stored copy of the transition.

        The in-memory copy may have been half-applied before the failure, so
        the record is reloaded first.
        """
        transition_id = str(transition.id)
        try:
            current = await self._store.get_transition(transition_id)
            if permanent:
                current.mark_failed(reason)
                final = True
            else:
                final = current.record_failure(reason)
            saved = await self._store.save_transition_if_unchanged(current)
        except Exception as exc:
            logger.error(
                "Could not record transition failure",
                transition_id=transition_id,
                reason=reason,
                error=str(exc),
            )
            return

        if not saved:
            return

        if final:
            logger.error(
                "Transition failed permanently, needs operator attention",
                transition_id=transition_id,
                order_id=str(current.order_id),
                attempts=current.attempts,
                reason=current.last_error,
            )
            report.failed.append(transition_id)
        else:
            logger.warning(
                "Transition attempt failed, will retry next sweep",
                transition_id=transition_id,
                order_id=str(current.order_id),
                attempts=current.attempts,
                reason=current.last_error,
            )
            report.retrying.append(transition_id)

    async def run_forever(self, interval: float, stop: asyncio.Event | None = None):
        """Sweep once per ``interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await self.sweep()
            except Exception:
                logger.exception("Sweep cycle failed")

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass

    # -------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------
    async def failed_transitions(self) -> list[PendingTransition]:
        return await self._store.list_transitions(TransitionState.FAILED.value)

    async def retry(self, transition_id) -> PendingTransition:
        """Put a failed transition back into the sweep."""
        transition = await self._store.get_transition(transition_id)
        transition.retry()
        if not await self._store.save_transition_if_unchanged(transition):
            raise TransientStoreError(f"Transition {transition_id} changed concurrently, retry again")

        logger.info("Transition retried", transition_id=str(transition.id), order_id=str(transition.order_id))
        return transition
