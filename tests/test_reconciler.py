"""Tests for the Grafana reconciler."""

from unittest.mock import patch

import pytest

from grafana_operator.actions import ActionRunner, GrafanaDesiredState
from grafana_operator.cluster_state import ClusterState, StateReader, StoreStateReader
from grafana_operator.controller_state import ControllerState, StatePublisher
from grafana_operator.discovery import ConfigMapDiscovery, JsonnetLibraryDiscovery
from grafana_operator.events import EventRecorder, EventType
from grafana_operator.exceptions import (
    GrafanaOperatorException,
    ObjectNotFoundError,
    ReconcileError,
)
from grafana_operator.manifest import (
    Grafana,
    GrafanaDashboardRef,
    GrafanaRoute,
    LabelSelector,
    NamedResource,
    Phase,
    GRAFANA_KIND,
)
from grafana_operator.process_config import (
    ProcessConfigStore,
    CONFIG_DASHBOARD_LABEL_SELECTOR,
    CONFIG_GRAFANA_DASHBOARDS_SYNCED,
)
from grafana_operator.reconciler import GrafanaReconciler, ReconcileResult
from grafana_operator.store import InMemoryStore

from conftest import NAMESPACE, make_grafana, make_route, make_service

GRAFANA_ID = NamedResource(GRAFANA_KIND, NAMESPACE, "grafana")
SELECTOR_KEY = f"{NAMESPACE}/grafana"


class FailingStateReader(StateReader):
    """State reader that always fails."""

    async def read(self, grafana: Grafana) -> ClusterState:
        raise ReconcileError("cluster api unavailable")


class ResettingStateReader(StateReader):
    """State reader whose connection drops."""

    async def read(self, grafana: Grafana) -> ClusterState:
        raise RuntimeError("connection reset")


class DeletingStateReader(StateReader):
    """State reader that deletes the object before failing."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def read(self, grafana: Grafana) -> ClusterState:
        self._store.delete_object(grafana.resource_id)
        raise ReconcileError("cluster api unavailable")


class FailingDiscovery(ConfigMapDiscovery):
    async def discover(self, grafana: Grafana) -> None:
        raise ReconcileError("config map listing failed")


def _reconciler(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    state_reader: StateReader | None = None,
    discovery: ConfigMapDiscovery | None = None,
) -> GrafanaReconciler:
    return GrafanaReconciler(
        store,
        process_config,
        publisher,
        state_reader=state_reader or StoreStateReader(store),
        desired_state=GrafanaDesiredState(),
        action_runner=ActionRunner(store),
        discovery=discovery or JsonnetLibraryDiscovery(store, process_config),
        recorder=recorder,
    )


def _add_routed_grafana(store: InMemoryStore, **kwargs) -> None:
    route = GrafanaRoute(enabled=True, hostname="grafana.example.com")
    store.add_object(make_grafana(route=route, **kwargs))
    store.add_object(make_service())
    store.add_object(make_route())


def _assert_failing(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    result: ReconcileResult,
    message: str,
) -> None:
    persisted = store.get_object(GRAFANA_ID, Grafana)
    assert persisted.status.phase == Phase.FAILING
    assert message in persisted.status.message
    events = recorder.events(GRAFANA_ID)
    assert len(events) == 1
    assert events[0].type == EventType.WARNING
    assert events[0].reason == "ProcessingError"
    assert message in events[0].message
    assert not process_config.get_config_bool(CONFIG_GRAFANA_DASHBOARDS_SYNCED)
    assert publisher.latest == ControllerState(grafana_ready=False)
    assert result == ReconcileResult(requeue_after=10.0)


async def test_success_with_route(
    store: InMemoryStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    reconciler: GrafanaReconciler,
) -> None:
    """Test a converged instance with a route is published as ready."""
    _add_routed_grafana(store)

    result = await reconciler.reconcile(GRAFANA_ID)
    assert result == ReconcileResult(requeue_after=10.0)

    persisted = store.get_object(GRAFANA_ID, Grafana)
    assert persisted.status.phase == Phase.RECONCILING
    assert persisted.status.message == "success"
    assert publisher.latest == ControllerState(
        grafana_ready=True,
        admin_url="https://grafana.example.com",
        dashboard_selectors=(LabelSelector(match_labels={"app": "grafana"}),),
        client_timeout=5,
    )
    assert recorder.events() == []


async def test_success_merges_label_selectors(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    reconciler: GrafanaReconciler,
) -> None:
    process_config.set_config_item(
        CONFIG_DASHBOARD_LABEL_SELECTOR, {"other/grafana": [{"match_labels": {}}]}
    )
    _add_routed_grafana(store)

    await reconciler.reconcile(GRAFANA_ID)
    assert process_config.get_config_item(CONFIG_DASHBOARD_LABEL_SELECTOR) == {
        "other/grafana": [{"match_labels": {}}],
        SELECTOR_KEY: [{"match_labels": {"app": "grafana"}}],
    }


@pytest.mark.parametrize(
    ("timeout_seconds", "expected"),
    [(None, 5), (-5, 5), (0, 0), (30, 30)],
)
async def test_client_timeout(
    store: InMemoryStore,
    publisher: StatePublisher,
    reconciler: GrafanaReconciler,
    timeout_seconds: int | None,
    expected: int,
) -> None:
    """Test invalid client timeouts fall back to the default."""
    _add_routed_grafana(store, timeout_seconds=timeout_seconds)
    await reconciler.reconcile(GRAFANA_ID)
    assert publisher.latest is not None
    assert publisher.latest.client_timeout == expected


async def test_repeated_cycles_do_not_rewrite_status(
    store: InMemoryStore, reconciler: GrafanaReconciler
) -> None:
    _add_routed_grafana(store)
    await reconciler.reconcile(GRAFANA_ID)
    version = store.get_object(GRAFANA_ID, Grafana).resource_version

    await reconciler.reconcile(GRAFANA_ID)
    assert store.get_object(GRAFANA_ID, Grafana).resource_version == version


async def test_status_written_before_publish(
    store: InMemoryStore, publisher: StatePublisher, reconciler: GrafanaReconciler
) -> None:
    """Test subscribers only hear about an outcome already in the status."""
    _add_routed_grafana(store)
    phases: list[Phase] = []

    def record(state: ControllerState) -> None:
        phases.append(store.get_object(GRAFANA_ID, Grafana).status.phase)

    with patch.object(publisher, "publish", side_effect=record):
        await reconciler.reconcile(GRAFANA_ID)
    assert phases == [Phase.RECONCILING]


async def test_no_endpoint(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    reconciler: GrafanaReconciler,
) -> None:
    """Test the first cycle fails when nothing can reach the instance yet."""
    store.add_object(make_grafana())

    result = await reconciler.reconcile(GRAFANA_ID)
    _assert_failing(
        store, process_config, publisher, recorder, result, "no reachable endpoint"
    )

    # The service created by the first cycle is found by the next one
    await reconciler.reconcile(GRAFANA_ID)
    assert store.get_object(GRAFANA_ID, Grafana).status.phase == Phase.RECONCILING
    assert publisher.latest is not None
    assert publisher.latest.admin_url == "http://grafana-service:3000"


async def test_state_read_failure(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> None:
    store.add_object(make_grafana())
    reconciler = _reconciler(
        store, process_config, publisher, recorder, state_reader=FailingStateReader()
    )
    result = await reconciler.reconcile(GRAFANA_ID)
    _assert_failing(
        store, process_config, publisher, recorder, result, "cluster api unavailable"
    )


async def test_discovery_failure(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> None:
    _add_routed_grafana(store)
    reconciler = _reconciler(
        store, process_config, publisher, recorder, discovery=FailingDiscovery()
    )
    result = await reconciler.reconcile(GRAFANA_ID)
    _assert_failing(
        store, process_config, publisher, recorder, result, "config map listing failed"
    )


async def test_action_failure(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    reconciler: GrafanaReconciler,
) -> None:
    store.add_object(make_grafana())
    with patch(
        "grafana_operator.actions.CreateOrUpdateAction.run",
        side_effect=RuntimeError("quota exceeded"),
    ):
        result = await reconciler.reconcile(GRAFANA_ID)
    _assert_failing(
        store,
        process_config,
        publisher,
        recorder,
        result,
        "Action 'create grafana service' failed: quota exceeded",
    )


async def test_failure_invalidates_dashboards(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> None:
    """Test a failure forces the dashboard controller to resync."""
    process_config.merge_dashboards(
        NAMESPACE, [GrafanaDashboardRef(name="dash", namespace=NAMESPACE, hash="123")]
    )
    process_config.mark_dashboards_synced()
    store.add_object(make_grafana())
    reconciler = _reconciler(
        store, process_config, publisher, recorder, state_reader=FailingStateReader()
    )

    await reconciler.reconcile(GRAFANA_ID)
    assert not process_config.get_config_bool(CONFIG_GRAFANA_DASHBOARDS_SYNCED)
    assert process_config.get_dashboards() == {
        NAMESPACE: [GrafanaDashboardRef(name="dash", namespace=NAMESPACE)]
    }


async def test_object_deleted_during_cycle(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> None:
    """Test failing to fetch the object while reporting a failure is raised."""
    store.add_object(make_grafana())
    reconciler = _reconciler(
        store,
        process_config,
        publisher,
        recorder,
        state_reader=DeletingStateReader(store),
    )
    with pytest.raises(ObjectNotFoundError):
        await reconciler.reconcile(GRAFANA_ID)
    assert publisher.latest is None


async def test_status_write_failure_is_raised(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> None:
    store.add_object(make_grafana())
    reconciler = _reconciler(
        store, process_config, publisher, recorder, state_reader=FailingStateReader()
    )
    with (
        patch.object(
            store, "update_status", side_effect=GrafanaOperatorException("timeout")
        ),
        pytest.raises(GrafanaOperatorException, match="timeout"),
    ):
        await reconciler.reconcile(GRAFANA_ID)


async def test_teardown(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    reconciler: GrafanaReconciler,
) -> None:
    """Test a deleted instance stops dependent controllers."""
    _add_routed_grafana(store)
    process_config.merge_config_item(
        CONFIG_DASHBOARD_LABEL_SELECTOR, {"other/grafana": []}
    )
    await reconciler.reconcile(GRAFANA_ID)
    assert publisher.latest is not None
    assert publisher.latest.grafana_ready

    store.delete_object(GRAFANA_ID)
    result = await reconciler.reconcile(GRAFANA_ID)
    assert result == ReconcileResult()
    assert publisher.latest == ControllerState(grafana_ready=False)
    assert process_config.get_config_item(CONFIG_DASHBOARD_LABEL_SELECTOR) == {
        "other/grafana": []
    }
    assert process_config.get_dashboards() is None
    assert not process_config.get_config_bool(CONFIG_GRAFANA_DASHBOARDS_SYNCED)


async def test_teardown_never_created(
    publisher: StatePublisher, reconciler: GrafanaReconciler
) -> None:
    result = await reconciler.reconcile(GRAFANA_ID)
    assert result.requeue_after is None
    assert publisher.latest == ControllerState(grafana_ready=False)


async def test_unexpected_state_read_error(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> None:
    """Test errors outside the package hierarchy still mark the object failing."""
    store.add_object(make_grafana())
    reconciler = _reconciler(
        store, process_config, publisher, recorder, state_reader=ResettingStateReader()
    )
    result = await reconciler.reconcile(GRAFANA_ID)
    _assert_failing(
        store, process_config, publisher, recorder, result, "connection reset"
    )


async def test_unexpected_discovery_error(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
    reconciler: GrafanaReconciler,
) -> None:
    _add_routed_grafana(store)
    with patch.object(
        JsonnetLibraryDiscovery, "discover", side_effect=OSError("disk full")
    ):
        result = await reconciler.reconcile(GRAFANA_ID)
    _assert_failing(store, process_config, publisher, recorder, result, "disk full")
