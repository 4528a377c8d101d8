"""
Grafana reconciler implementation.

This is the control loop that moves the cluster toward the state declared in
a Grafana object. One call to `reconcile` runs one cycle for one object:

    fetch -> read state -> diff and run actions -> discover config maps
          -> update status -> resolve admin url -> publish -> requeue

Every handled outcome, successful or not, schedules the next cycle after the
same fixed delay. Failures are persisted into the status of the object and
recorded as events instead of being raised, so the caller does not apply its
own backoff on top of the fixed delay. The only error raised to the caller is
a failure to fetch the object while reporting another failure.

Dependencies:
    - grafana_operator.store.Store: The cluster API.
    - grafana_operator.status.StatusTracker: Persists the phase and message.
    - grafana_operator.endpoint.resolve_admin_url: Picks the admin URL.
    - grafana_operator.controller_state.StatePublisher: Publishes the outcome.
"""

import copy
from dataclasses import dataclass
import logging

from .actions import ActionRunner, GrafanaDesiredState
from .cluster_state import ClusterState, StateReader, StoreStateReader
from .config import GrafanaControllerConfig
from .controller_state import ControllerState, StatePublisher
from .discovery import ConfigMapDiscovery, JsonnetLibraryDiscovery
from .endpoint import resolve_admin_url
from .events import EventRecorder, EventType
from .exceptions import GrafanaOperatorException, ObjectNotFoundError
from .manifest import Grafana, NamedResource, Phase
from .process_config import ProcessConfigStore, CONFIG_DASHBOARD_LABEL_SELECTOR
from .status import StatusTracker
from .store import Store

__all__ = ["GrafanaReconciler", "ReconcileResult", "create_reconciler"]

_LOGGER = logging.getLogger(__name__)

SUCCESS_MESSAGE = "success"
PROCESSING_ERROR_REASON = "ProcessingError"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a cycle handed back to the scheduler."""

    requeue_after: float | None = None
    """Seconds until the next cycle, or None to wait for the next change."""


class GrafanaReconciler:
    """Runs reconciliation cycles for Grafana objects.

    The scheduler calling `reconcile` may run cycles for different objects
    concurrently but never two cycles for the same object.
    """

    def __init__(
        self,
        store: Store,
        process_config: ProcessConfigStore,
        publisher: StatePublisher,
        *,
        state_reader: StateReader,
        desired_state: GrafanaDesiredState,
        action_runner: ActionRunner,
        discovery: ConfigMapDiscovery,
        recorder: EventRecorder,
        config: GrafanaControllerConfig | None = None,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            store: The cluster API used to fetch objects and write status.
            process_config: Config shared with the dashboard controller.
            publisher: Receives the controller state after every cycle.
            state_reader: Reads the current cluster state of an instance.
            desired_state: Computes the actions needed to converge.
            action_runner: Executes the computed actions.
            discovery: Discovers dependent config maps.
            recorder: Records events against the object.
            config: The configuration for the reconciler.
        """
        self._store = store
        self._process_config = process_config
        self._publisher = publisher
        self._state_reader = state_reader
        self._desired_state = desired_state
        self._action_runner = action_runner
        self._discovery = discovery
        self._recorder = recorder
        self._config = config or GrafanaControllerConfig()
        self._status = StatusTracker(store, process_config)

    async def reconcile(self, resource_id: NamedResource) -> ReconcileResult:
        """Run one reconciliation cycle for the object.

        Raises:
            GrafanaOperatorException: If the object cannot be fetched for a
                reason other than not existing, or cannot be fetched again
                while reporting a failure.
        """
        _LOGGER.debug("Reconciling %s", resource_id)
        try:
            instance = self._store.get_object(resource_id, Grafana)
        except ObjectNotFoundError:
            return self._teardown(resource_id)

        grafana = copy.deepcopy(instance)

        try:
            state = await self._state_reader.read(grafana)
        except Exception as err:
            _LOGGER.error("Error reading state of %s: %s", resource_id, err)
            return self._manage_error(grafana, err)

        try:
            actions = self._desired_state.reconcile(state, grafana)
            await self._action_runner.run_all(actions)
        except Exception as err:
            return self._manage_error(grafana, err)

        try:
            await self._discovery.discover(grafana)
        except Exception as err:
            return self._manage_error(grafana, err)

        return self._manage_success(grafana, state)

    def _teardown(self, resource_id: NamedResource) -> ReconcileResult:
        """Stop dependent controllers when the Grafana instance is gone."""
        _LOGGER.info("%s not found, cleaning up controller state", resource_id)
        self._process_config.remove_config_entry(
            CONFIG_DASHBOARD_LABEL_SELECTOR, resource_id.namespaced_name
        )
        self._process_config.cleanup()
        self._publisher.publish(ControllerState(grafana_ready=False))
        return ReconcileResult()

    def _manage_error(self, grafana: Grafana, issue: Exception) -> ReconcileResult:
        self._recorder.event(
            grafana.resource_id, EventType.WARNING, PROCESSING_ERROR_REASON, str(issue)
        )
        # Failing to fetch or write the object here is fatal for the cycle
        self._status.apply_status(grafana, Phase.FAILING, str(issue))

        self._process_config.invalidate_dashboards()
        self._publisher.publish(ControllerState(grafana_ready=False))
        return ReconcileResult(requeue_after=self._config.requeue_delay)

    def _manage_success(self, grafana: Grafana, state: ClusterState) -> ReconcileResult:
        try:
            self._status.apply_status(grafana, Phase.RECONCILING, SUCCESS_MESSAGE)
        except GrafanaOperatorException as err:
            return self._manage_error(grafana, err)

        try:
            url = resolve_admin_url(state, grafana)
        except Exception as err:
            return self._manage_error(grafana, err)

        self._process_config.merge_config_item(
            CONFIG_DASHBOARD_LABEL_SELECTOR,
            {
                grafana.resource_id.namespaced_name: [
                    selector.to_dict()
                    for selector in grafana.spec.dashboard_label_selector
                ]
            },
        )
        self._publisher.publish(
            ControllerState(
                grafana_ready=True,
                admin_url=url,
                dashboard_selectors=tuple(grafana.spec.dashboard_label_selector),
                dashboard_namespace_selector=grafana.spec.dashboard_namespace_selector,
                client_timeout=self._client_timeout(grafana),
            )
        )
        _LOGGER.debug("Desired cluster state met for %s", grafana.resource_id)
        return ReconcileResult(requeue_after=self._config.requeue_delay)

    def _client_timeout(self, grafana: Grafana) -> int:
        client = grafana.spec.client
        if client is None or client.timeout_seconds is None:
            return self._config.default_client_timeout
        if client.timeout_seconds < 0:
            return self._config.default_client_timeout
        return client.timeout_seconds


def create_reconciler(
    store: Store,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    config: GrafanaControllerConfig | None = None,
) -> GrafanaReconciler:
    """Create a reconciler whose collaborators all work against the store."""
    return GrafanaReconciler(
        store,
        process_config,
        publisher,
        state_reader=StoreStateReader(store),
        desired_state=GrafanaDesiredState(),
        action_runner=ActionRunner(store),
        discovery=JsonnetLibraryDiscovery(store, process_config),
        recorder=recorder,
        config=config,
    )
