"""Work queue that drives reconciliation cycles.

The scheduler guarantees that at most one cycle runs at a time for a given
object while cycles for different objects run concurrently. A request that
arrives while a cycle for the same object is running is remembered and runs
once the current cycle finishes.

Requeue delays returned by a cycle are honored with a background timer. Only
when a cycle raises does the scheduler apply its own capped exponential
backoff.
"""

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any

from .config import SchedulerConfig
from .manifest import NamedResource
from .reconciler import ReconcileResult

__all__ = ["ReconcileScheduler"]

_LOGGER = logging.getLogger(__name__)

ReconcileFn = Callable[[NamedResource], Awaitable[ReconcileResult]]


class ReconcileScheduler:
    """Schedules reconcile cycles, serialized per object identity."""

    def __init__(
        self, reconcile: ReconcileFn, config: SchedulerConfig | None = None
    ) -> None:
        """Initialize the scheduler.

        Args:
            reconcile: Runs one cycle for an object.
            config: The configuration for the scheduler.
        """
        self._reconcile = reconcile
        self._config = config or SchedulerConfig()
        self._running: dict[NamedResource, asyncio.Task[None]] = {}
        self._dirty: set[NamedResource] = set()
        self._timers: dict[NamedResource, asyncio.Task[None]] = {}
        self._failures: dict[NamedResource, int] = {}
        self._closed = False

    def enqueue(self, resource_id: NamedResource, delay: float = 0.0) -> None:
        """Request a cycle for the object, optionally after a delay.

        A pending delayed request is replaced by a newer one.
        """
        if self._closed:
            _LOGGER.debug("Scheduler closed, dropping %s", resource_id)
            return
        if (timer := self._timers.pop(resource_id, None)) is not None:
            timer.cancel()
        if delay > 0:
            self._timers[resource_id] = asyncio.create_task(
                self._enqueue_later(resource_id, delay),
                name=f"requeue-{resource_id}",
            )
            return
        if resource_id in self._running:
            self._dirty.add(resource_id)
            return
        self._start(resource_id)

    def _start(self, resource_id: NamedResource) -> None:
        task = asyncio.create_task(
            self._run(resource_id), name=f"reconcile-{resource_id}"
        )
        self._running[resource_id] = task
        task.add_done_callback(lambda t: self._task_done(resource_id, t))

    async def _enqueue_later(self, resource_id: NamedResource, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timers.pop(resource_id, None)
        self.enqueue(resource_id)

    async def _run(self, resource_id: NamedResource) -> None:
        try:
            result = await self._reconcile(resource_id)
        except Exception as err:
            failures = self._failures.get(resource_id, 0) + 1
            self._failures[resource_id] = failures
            delay = min(
                self._config.error_backoff_base * 2 ** (failures - 1),
                self._config.error_backoff_max,
            )
            _LOGGER.error(
                "Reconcile of %s failed (attempt %d), retrying in %.1fs: %s",
                resource_id,
                failures,
                delay,
                err,
            )
            self._requeue(resource_id, delay)
            return
        self._failures.pop(resource_id, None)
        if result.requeue_after is not None:
            self._requeue(resource_id, result.requeue_after)

    def _requeue(self, resource_id: NamedResource, delay: float) -> None:
        # A change that arrived during the cycle takes precedence over a timer
        if resource_id not in self._dirty:
            self.enqueue(resource_id, delay)

    def _task_done(self, resource_id: NamedResource, task: asyncio.Task[Any]) -> None:
        if self._running.get(resource_id) is task:
            del self._running[resource_id]
        if task.cancelled():
            self._dirty.discard(resource_id)
            return
        if resource_id in self._dirty:
            self._dirty.discard(resource_id)
            self.enqueue(resource_id)

    def is_scheduled(self, resource_id: NamedResource) -> bool:
        """Return True if a delayed cycle is pending for the object."""
        return resource_id in self._timers

    def get_num_active_tasks(self) -> int:
        """Get the number of running cycles."""
        return len(self._running)

    async def block_till_done(self) -> None:
        """Wait for running cycles, including reruns, but not delayed ones."""
        while self._running:
            _LOGGER.debug("Waiting for %d cycles to complete", len(self._running))
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)
            # Let done callbacks start any reruns
            await asyncio.sleep(0)

    async def close(self) -> None:
        """Cancel all running and delayed cycles."""
        _LOGGER.info("Closing scheduler, cancelling tasks")
        self._closed = True
        tasks = list(self._timers.values()) + list(self._running.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._running.clear()
        self._dirty.clear()
