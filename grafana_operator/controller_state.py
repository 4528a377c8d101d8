"""Broadcast of the Grafana controller state to dependent controllers.

After every reconciliation cycle the Grafana controller publishes a
`ControllerState` describing whether Grafana is ready and how to reach it.
Dependent controllers (e.g. the dashboard controller) subscribe to these facts
without being coupled to the Grafana controller.

Publishing never blocks. Each subscription holds at most one undelivered
fact; a newer fact replaces it, so a slow subscriber may miss intermediate
facts but always observes the latest one and memory stays bounded.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
import logging
from types import TracebackType

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from .manifest import LabelSelector

__all__ = ["ControllerState", "StatePublisher", "Subscription"]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerState(DataClassDictMixin):
    """Facts about a Grafana instance published after a cycle."""

    grafana_ready: bool
    admin_url: str = ""
    dashboard_selectors: tuple[LabelSelector, ...] = field(default_factory=tuple)
    dashboard_namespace_selector: LabelSelector | None = None
    client_timeout: int = 0

    class Config(BaseConfig):
        omit_none = True


class Subscription:
    """A subscriber's view of the published controller state."""

    def __init__(self, publisher: "StatePublisher") -> None:
        self._publisher = publisher
        # None marks a closed subscription
        self._queue: asyncio.Queue[ControllerState | None] = asyncio.Queue(maxsize=1)
        self._closed = False

    def offer(self, state: ControllerState) -> None:
        """Make a fact available, replacing any undelivered one."""
        if self._closed:
            return
        if self._queue.full():
            dropped = self._queue.get_nowait()
            _LOGGER.debug("Subscriber replaced undelivered state %s", dropped)
        self._queue.put_nowait(state)

    def get_nowait(self) -> ControllerState | None:
        """Return the pending fact, or None if there is none."""
        if self._closed:
            return None
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def get(self) -> ControllerState | None:
        """Wait for the next fact, or None once the subscription is closed."""
        state = await self._queue.get()
        if state is None:
            # Leave the marker for any other waiter
            self._queue.put_nowait(None)
        return state

    def close(self) -> None:
        """Stop receiving facts."""
        if self._closed:
            return
        self._closed = True
        self._publisher.unsubscribe(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ControllerState]:
        return self

    async def __anext__(self) -> ControllerState:
        if self._closed or (state := await self.get()) is None:
            raise StopAsyncIteration
        return state

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class StatePublisher:
    """Process wide broadcast point for ControllerState facts."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._latest: ControllerState | None = None

    @property
    def latest(self) -> ControllerState | None:
        """The most recently published fact."""
        return self._latest

    def publish(self, state: ControllerState) -> None:
        """Deliver a fact to every subscriber without waiting for them."""
        _LOGGER.debug(
            "Publishing controller state to %d subscribers: %s",
            len(self._subscriptions),
            state,
        )
        self._latest = state
        for subscription in list(self._subscriptions):
            subscription.offer(state)

    def subscribe(self) -> Subscription:
        """Register a new subscriber.

        The subscriber immediately receives the latest fact, if any.
        """
        subscription = Subscription(self)
        if self._latest is not None:
            subscription.offer(self._latest)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
