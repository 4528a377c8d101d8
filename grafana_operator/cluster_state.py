"""Point in time view of the cluster objects belonging to a Grafana instance."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from typing import TypeVar

from .exceptions import ObjectNotFoundError
from .manifest import (
    Grafana,
    Ingress,
    NamedResource,
    Route,
    Service,
    GRAFANA_INGRESS_NAME,
    GRAFANA_ROUTE_NAME,
    GRAFANA_SERVICE_NAME,
    INGRESS_KIND,
    ROUTE_KIND,
    SERVICE_KIND,
)
from .store import Store

__all__ = ["ClusterState", "StateReader", "StoreStateReader"]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", Service, Ingress, Route)


@dataclass(frozen=True)
class ClusterState:
    """The network surfaces currently present for a Grafana instance.

    A new snapshot is read for every reconciliation cycle and never modified.
    """

    grafana_service: Service | None = None
    grafana_ingress: Ingress | None = None
    grafana_route: Route | None = None


class StateReader(ABC):
    """Reads the current cluster state for a Grafana instance."""

    @abstractmethod
    async def read(self, grafana: Grafana) -> ClusterState:
        """Return a fresh snapshot of the objects belonging to the instance."""


class StoreStateReader(StateReader):
    """Reads the cluster state from a Store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def read(self, grafana: Grafana) -> ClusterState:
        """Return a fresh snapshot of the objects belonging to the instance."""
        state = ClusterState(
            grafana_service=self._read(
                NamedResource(SERVICE_KIND, grafana.namespace, GRAFANA_SERVICE_NAME),
                Service,
            ),
            grafana_ingress=self._read(
                NamedResource(INGRESS_KIND, grafana.namespace, GRAFANA_INGRESS_NAME),
                Ingress,
            ),
            grafana_route=self._read(
                NamedResource(ROUTE_KIND, grafana.namespace, GRAFANA_ROUTE_NAME),
                Route,
            ),
        )
        _LOGGER.debug("Read cluster state for %s: %s", grafana.resource_id, state)
        return state

    def _read(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        try:
            return self._store.get_object(resource_id, cls)
        except ObjectNotFoundError:
            return None
