"""Actions that move the cluster state toward the desired state.

`GrafanaDesiredState.reconcile` compares a `ClusterState` snapshot with the
spec of a Grafana instance and returns the list of actions needed to converge.
An already converged instance produces an empty list. `ActionRunner` executes
the actions against the store in order and stops at the first failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

from .cluster_state import ClusterState
from .exceptions import ActionFailedError, ObjectNotFoundError
from .manifest import (
    BaseManifest,
    Grafana,
    Ingress,
    NamedResource,
    Route,
    Service,
    ServicePort,
    get_grafana_port,
    GRAFANA_INGRESS_NAME,
    GRAFANA_ROUTE_NAME,
    GRAFANA_SERVICE_NAME,
)
from .store import Store

__all__ = [
    "ClusterAction",
    "CreateOrUpdateAction",
    "DeleteAction",
    "GrafanaDesiredState",
    "ActionRunner",
]

_LOGGER = logging.getLogger(__name__)

GRAFANA_LABELS = {"app": "grafana"}
GRAFANA_PORT_NAME = "grafana"


class ClusterAction(ABC):
    """A single change to apply to the cluster."""

    description: str

    @abstractmethod
    def run(self, store: Store) -> None:
        """Apply the change."""


@dataclass(frozen=True)
class CreateOrUpdateAction(ClusterAction):
    """Create an object or update it to the given state."""

    obj: BaseManifest
    description: str

    def run(self, store: Store) -> None:
        store.add_object(self.obj)


@dataclass(frozen=True)
class DeleteAction(ClusterAction):
    """Delete an object if it exists."""

    resource_id: NamedResource
    description: str

    def run(self, store: Store) -> None:
        try:
            store.delete_object(self.resource_id)
        except ObjectNotFoundError:
            _LOGGER.debug("Object %s already deleted", self.resource_id)


class GrafanaDesiredState:
    """Computes the actions needed to reach the desired state of an instance."""

    def reconcile(self, state: ClusterState, grafana: Grafana) -> list[ClusterAction]:
        """Return the actions needed to converge, empty when converged."""
        actions: list[ClusterAction] = []
        if action := self._service_action(state, grafana):
            actions.append(action)
        if action := self._ingress_action(state, grafana):
            actions.append(action)
        if action := self._route_action(state, grafana):
            actions.append(action)
        _LOGGER.debug(
            "Desired state for %s requires %d actions", grafana.resource_id, len(actions)
        )
        return actions

    def _service_action(
        self, state: ClusterState, grafana: Grafana
    ) -> ClusterAction | None:
        current = state.grafana_service
        desired = Service(
            name=GRAFANA_SERVICE_NAME,
            namespace=grafana.namespace,
            # The cluster IP is assigned by the cluster, never by the controller
            cluster_ip=current.cluster_ip if current else None,
            ports=[ServicePort(port=get_grafana_port(grafana), name=GRAFANA_PORT_NAME)],
            labels=dict(GRAFANA_LABELS),
        )
        if current is None:
            return CreateOrUpdateAction(desired, "create grafana service")
        if current.ports != desired.ports or current.labels != desired.labels:
            return CreateOrUpdateAction(desired, "update grafana service")
        return None

    def _ingress_action(
        self, state: ClusterState, grafana: Grafana
    ) -> ClusterAction | None:
        current = state.grafana_ingress
        spec = grafana.spec.ingress
        if spec is None or not spec.enabled:
            if current is None:
                return None
            return DeleteAction(
                NamedResource(Ingress.kind, grafana.namespace, GRAFANA_INGRESS_NAME),
                "delete grafana ingress",
            )
        desired = Ingress(
            name=GRAFANA_INGRESS_NAME,
            namespace=grafana.namespace,
            hostname=spec.hostname,
            load_balancer=list(current.load_balancer) if current else [],
            labels=dict(GRAFANA_LABELS),
        )
        if current is None:
            return CreateOrUpdateAction(desired, "create grafana ingress")
        if current.hostname != desired.hostname or current.labels != desired.labels:
            return CreateOrUpdateAction(desired, "update grafana ingress")
        return None

    def _route_action(
        self, state: ClusterState, grafana: Grafana
    ) -> ClusterAction | None:
        current = state.grafana_route
        spec = grafana.spec.route
        if spec is None or not spec.enabled:
            if current is None:
                return None
            return DeleteAction(
                NamedResource(Route.kind, grafana.namespace, GRAFANA_ROUTE_NAME),
                "delete grafana route",
            )
        host = spec.hostname or ""
        if current is not None and not host:
            # Keep the host generated by the cluster when none is requested
            host = current.host
        desired = Route(
            name=GRAFANA_ROUTE_NAME,
            namespace=grafana.namespace,
            host=host,
            labels=dict(GRAFANA_LABELS),
        )
        if current is None:
            return CreateOrUpdateAction(desired, "create grafana route")
        if current.host != desired.host or current.labels != desired.labels:
            return CreateOrUpdateAction(desired, "update grafana route")
        return None


class ActionRunner:
    """Runs a list of actions against the store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def run_all(self, actions: list[ClusterAction]) -> None:
        """Run the actions in order.

        Raises:
            ActionFailedError: If an action fails; later actions are not run.
        """
        for action in actions:
            _LOGGER.info("Running action: %s", action.description)
            try:
                action.run(self._store)
            except Exception as err:
                raise ActionFailedError(action.description, str(err)) from err
