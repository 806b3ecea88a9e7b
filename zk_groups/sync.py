"""
Batched publication of group root changes to the ledger.

Membership changes append (group_id, root) entries to a SyncQueue. The
first change after an idle period schedules one deferred flush; every
change that lands before the timer fires rides along in the same batch.
Consecutive fire cycles are independent batches.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol

import trio

from .constants import DEFAULT_PUBLISH_DELAY, PUBLISH_TASK_NAME
from .ledger import LedgerClient
from .models import LedgerReceipt, PendingUpdate

logger = logging.getLogger("zk_groups.sync")


class SyncQueue:
    """Ordered list of pending root changes. Not deduplicated by group."""

    def __init__(self) -> None:
        self._items: List[PendingUpdate] = []

    def __len__(self) -> int:
        return len(self._items)

    def enqueue(self, group_id: int, fingerprint: int) -> PendingUpdate:
        update = PendingUpdate(group_id=group_id, fingerprint=fingerprint)
        self._items.append(update)
        return update

    def drain(self) -> List[PendingUpdate]:
        """Snapshot and clear; later enqueues start a fresh batch."""
        items, self._items = self._items, []
        return items

    def requeue(self, items: Iterable[PendingUpdate]) -> None:
        """Put items back ahead of anything queued since they were drained."""
        self._items = list(items) + self._items

    def snapshot(self) -> List[PendingUpdate]:
        return list(self._items)


class TaskRegistry:
    """Named, queryable registry of pending timeouts."""

    def __init__(self) -> None:
        self._timeouts: Dict[str, trio.CancelScope] = {}

    def add_timeout(self, name: str, scope: trio.CancelScope) -> None:
        if name in self._timeouts:
            raise ValueError(f"Timeout '{name}' is already registered")
        self._timeouts[name] = scope

    def delete_timeout(self, name: str, scope: Optional[trio.CancelScope] = None) -> None:
        if scope is not None and self._timeouts.get(name) is not scope:
            return
        self._timeouts.pop(name, None)

    def get_timeouts(self) -> List[str]:
        return list(self._timeouts)

    def has_timeout(self, name: str) -> bool:
        return name in self._timeouts

    def cancel_all(self) -> None:
        for scope in self._timeouts.values():
            scope.cancel()


class RetryPolicy(Protocol):
    def on_success(self, batch: List[PendingUpdate]) -> None:
        ...

    def on_failure(self, batch: List[PendingUpdate], publisher: "BatchPublisher") -> None:
        ...


class DropFailedBatches:
    """Failed batches are logged and discarded."""

    def on_success(self, batch: List[PendingUpdate]) -> None:
        pass

    def on_failure(self, batch: List[PendingUpdate], publisher: "BatchPublisher") -> None:
        logger.warning("Dropping %d pending group updates", len(batch))


class RequeueFailedBatches:
    """
    Failed batches go back to the front of the queue and a new publication
    is scheduled. After ``max_attempts`` consecutive failures the batch is
    dropped.
    """

    def __init__(self, max_attempts: Optional[int] = None) -> None:
        self.max_attempts = max_attempts
        self.failures = 0

    def on_success(self, batch: List[PendingUpdate]) -> None:
        self.failures = 0

    def on_failure(self, batch: List[PendingUpdate], publisher: "BatchPublisher") -> None:
        self.failures += 1
        if self.max_attempts is not None and self.failures >= self.max_attempts:
            logger.warning(
                "Dropping %d pending group updates after %d failed attempts",
                len(batch),
                self.failures,
            )
            self.failures = 0
            return

        publisher.queue.requeue(batch)
        publisher.schedule_publication()
        logger.info("Requeued %d pending group updates", len(batch))


class BatchPublisher:
    """
    Debounced, single-flight publisher draining a SyncQueue into one ledger
    transaction per fire cycle.

    ``schedule_publication`` is a no-op while any timeout is registered;
    otherwise it registers one and starts a task in ``nursery`` that sleeps
    ``delay`` seconds and then calls ``flush``.
    """

    def __init__(
        self,
        queue: SyncQueue,
        ledger: LedgerClient,
        nursery: trio.Nursery,
        delay: float = DEFAULT_PUBLISH_DELAY,
        registry: Optional[TaskRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        task_name: str = PUBLISH_TASK_NAME,
    ) -> None:
        self.queue = queue
        self.registry = registry if registry is not None else TaskRegistry()
        self.retry_policy = retry_policy if retry_policy is not None else DropFailedBatches()
        self._ledger = ledger
        self._nursery = nursery
        self._delay = delay
        self._task_name = task_name
        self._flush_lock = trio.Lock()

    @property
    def pending(self) -> bool:
        return bool(self.registry.get_timeouts())

    @property
    def delay(self) -> float:
        return self._delay

    def schedule_publication(self) -> bool:
        """
        Schedule one deferred flush unless a publication is already pending.

        Returns:
            True if a new publication was scheduled
        """
        # No checkpoint between the check and the registration
        if self.registry.get_timeouts():
            return False

        scope = trio.CancelScope()
        self.registry.add_timeout(self._task_name, scope)
        self._nursery.start_soon(self._fire_after_delay, scope, name=self._task_name)
        logger.debug("Contract update scheduled in %.1f seconds", self._delay)
        return True

    def cancel(self) -> None:
        self.registry.cancel_all()

    async def _fire_after_delay(self, scope: trio.CancelScope) -> None:
        try:
            with scope:
                await trio.sleep(self._delay)
        finally:
            self.registry.delete_timeout(self._task_name, scope)

        if scope.cancelled_caught:
            logger.debug("Scheduled contract update cancelled")
            return

        await self.flush()

    async def flush(self) -> Optional[LedgerReceipt]:
        """
        Submit everything queued so far as one ledger batch.

        Returns:
            The ledger receipt, or None if the queue was empty
        """
        async with self._flush_lock:
            if not len(self.queue):
                return None

            batch = self.queue.drain()

            try:
                receipt = await self._ledger.update_groups(batch)
            except Exception:
                logger.exception("Failed to submit %d group updates to the contract", len(batch))
                receipt = LedgerReceipt(status=False, events=[])

            if receipt.status:
                count = len(receipt.events)
                logger.info(
                    "%d %s been updated in the contract",
                    count,
                    "group has" if count == 1 else "groups have",
                )
                self.retry_policy.on_success(batch)
            else:
                logger.error("Failed to update contract groups")
                self.retry_policy.on_failure(batch, self)

            return receipt
