"""
Grafana controller wiring.

The controller watches the store for changes to Grafana objects and to the
objects a Grafana instance depends on, and turns them into reconcile requests
for the scheduler. Periodic cycles come from the requeue delay returned by
every cycle.

Key Concepts:
    - Grafana: The managed object declaring the desired state.
    - Dependent objects: Service, Ingress, Route and ConfigMap objects in the
      namespace of a Grafana instance. A change to one of them triggers a
      cycle for every Grafana instance in that namespace.
"""

from collections.abc import Callable
import logging
from typing import cast

from .manifest import (
    BaseManifest,
    Grafana,
    NamedResource,
    CONFIG_MAP_KIND,
    GRAFANA_KIND,
    INGRESS_KIND,
    ROUTE_KIND,
    SERVICE_KIND,
)
from .scheduler import ReconcileScheduler
from .store import Store, StoreEvent

__all__ = ["GrafanaController"]

_LOGGER = logging.getLogger(__name__)

DEPENDENT_KINDS = {SERVICE_KIND, INGRESS_KIND, ROUTE_KIND, CONFIG_MAP_KIND}

# Status writes are made by the controller itself and do not need a new cycle
_TRIGGER_EVENTS = (
    StoreEvent.OBJECT_ADDED,
    StoreEvent.OBJECT_UPDATED,
    StoreEvent.OBJECT_DELETED,
)


class GrafanaController:
    """Feeds store changes into the reconcile scheduler."""

    def __init__(self, store: Store, scheduler: ReconcileScheduler) -> None:
        """
        Initialize the controller.

        Args:
            store: The store to watch for changes.
            scheduler: Receives reconcile requests.
        """
        self._store = store
        self._scheduler = scheduler
        self._removers: list[Callable[[], None]] = []

    def start(self) -> None:
        """Start watching, requesting a cycle for every existing Grafana."""
        if self._removers:
            return
        _LOGGER.info("Watching for Grafana objects in the store")
        for event in _TRIGGER_EVENTS:
            self._removers.append(
                self._store.add_listener(
                    event, self._on_change, flush=event == StoreEvent.OBJECT_ADDED
                )
            )

    async def close(self) -> None:
        """Stop watching and cancel any scheduled cycles."""
        _LOGGER.info("Closing GrafanaController")
        for remove in self._removers:
            remove()
        self._removers.clear()
        await self._scheduler.close()

    def _on_change(self, resource_id: NamedResource, obj: BaseManifest | None) -> None:
        if resource_id.kind == GRAFANA_KIND:
            self._scheduler.enqueue(resource_id)
            return
        if resource_id.kind not in DEPENDENT_KINDS:
            return
        grafanas = cast(
            list[Grafana], self._store.list_objects(GRAFANA_KIND, resource_id.namespace)
        )
        for grafana in grafanas:
            owner = grafana.resource_id
            _LOGGER.debug("Change to %s triggers %s", resource_id, owner)
            self._scheduler.enqueue(owner)
