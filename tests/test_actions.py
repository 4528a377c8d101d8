"""Tests for computing and running cluster actions."""

from typing import cast

import pytest

from grafana_operator.actions import (
    ActionRunner,
    CreateOrUpdateAction,
    DeleteAction,
    GrafanaDesiredState,
)
from grafana_operator.cluster_state import ClusterState, StoreStateReader
from grafana_operator.discovery import JsonnetLibraryDiscovery
from grafana_operator.exceptions import ActionFailedError, ReconcileError
from grafana_operator.manifest import (
    ConfigMap,
    GrafanaIngress,
    GrafanaRoute,
    GrafanaServiceSpec,
    Ingress,
    JsonnetConfig,
    LabelSelector,
    LoadBalancerIngress,
    NamedResource,
    Route,
    Service,
    GRAFANA_INGRESS_NAME,
    INGRESS_KIND,
)
from grafana_operator.process_config import (
    ProcessConfigStore,
    CONFIG_JSONNET_LIBRARIES,
)
from grafana_operator.store import InMemoryStore

from conftest import NAMESPACE, make_grafana, make_route, make_service

DESIRED = GrafanaDesiredState()


def test_create_missing_objects() -> None:
    """Test an empty cluster needs a service and the enabled route."""
    grafana = make_grafana(route=GrafanaRoute(enabled=True, hostname="grafana.local"))
    actions = DESIRED.reconcile(ClusterState(), grafana)
    assert [action.description for action in actions] == [
        "create grafana service",
        "create grafana route",
    ]
    service = cast(Service, cast(CreateOrUpdateAction, actions[0]).obj)
    assert service.ports[0].port == 3000
    assert service.labels == {"app": "grafana"}
    route = cast(Route, cast(CreateOrUpdateAction, actions[1]).obj)
    assert route.host == "grafana.local"


def test_converged() -> None:
    grafana = make_grafana(route=GrafanaRoute(enabled=True))
    state = ClusterState(grafana_service=make_service(), grafana_route=make_route())
    assert DESIRED.reconcile(state, grafana) == []


def test_update_service_port() -> None:
    """Test a changed port updates the service and keeps its cluster IP."""
    grafana = make_grafana(service=GrafanaServiceSpec(port=8080))
    state = ClusterState(grafana_service=make_service())
    actions = DESIRED.reconcile(state, grafana)
    assert len(actions) == 1
    assert actions[0].description == "update grafana service"
    service = cast(Service, cast(CreateOrUpdateAction, actions[0]).obj)
    assert service.ports[0].port == 8080
    assert service.cluster_ip == "10.0.0.10"


def test_delete_disabled_route() -> None:
    grafana = make_grafana(route=GrafanaRoute(enabled=False))
    state = ClusterState(grafana_service=make_service(), grafana_route=make_route())
    actions = DESIRED.reconcile(state, grafana)
    assert len(actions) == 1
    assert isinstance(actions[0], DeleteAction)
    assert actions[0].description == "delete grafana route"


def test_ingress_keeps_load_balancer() -> None:
    """Test updating the ingress host keeps the load balancer status."""
    grafana = make_grafana(
        ingress=GrafanaIngress(enabled=True, hostname="new.example.com")
    )
    current = Ingress(
        name=GRAFANA_INGRESS_NAME,
        namespace=NAMESPACE,
        hostname="old.example.com",
        load_balancer=[LoadBalancerIngress(ip="192.168.1.1")],
        labels={"app": "grafana"},
    )
    state = ClusterState(grafana_service=make_service(), grafana_ingress=current)
    actions = DESIRED.reconcile(state, grafana)
    assert [action.description for action in actions] == ["update grafana ingress"]
    ingress = cast(Ingress, cast(CreateOrUpdateAction, actions[0]).obj)
    assert ingress.hostname == "new.example.com"
    assert ingress.load_balancer == [LoadBalancerIngress(ip="192.168.1.1")]


def test_route_keeps_generated_host() -> None:
    grafana = make_grafana(route=GrafanaRoute(enabled=True))
    state = ClusterState(
        grafana_service=make_service(), grafana_route=make_route("generated.apps")
    )
    assert DESIRED.reconcile(state, grafana) == []


async def test_run_actions(store: InMemoryStore) -> None:
    """Test running actions converges the store."""
    grafana = make_grafana(ingress=GrafanaIngress(enabled=True, hostname="g.local"))
    reader = StoreStateReader(store)
    runner = ActionRunner(store)

    await runner.run_all(DESIRED.reconcile(await reader.read(grafana), grafana))
    state = await reader.read(grafana)
    assert state.grafana_service is not None
    assert state.grafana_ingress is not None
    assert state.grafana_ingress.hostname == "g.local"
    assert state.grafana_route is None
    assert DESIRED.reconcile(state, grafana) == []

    grafana.spec.ingress = GrafanaIngress(enabled=False)
    await runner.run_all(DESIRED.reconcile(state, grafana))
    assert (await reader.read(grafana)).grafana_ingress is None


async def test_delete_missing_object(store: InMemoryStore) -> None:
    action = DeleteAction(
        NamedResource(INGRESS_KIND, NAMESPACE, GRAFANA_INGRESS_NAME), "delete"
    )
    await ActionRunner(store).run_all([action])


async def test_action_failure(store: InMemoryStore) -> None:
    """Test a failing action stops the run with a reconcile error."""
    failing = CreateOrUpdateAction(make_route(), "create grafana route")
    later = CreateOrUpdateAction(make_service(), "create grafana service")

    def fail(*args, **kwargs):
        raise RuntimeError("api unavailable")

    store.add_object = fail  # type: ignore[method-assign]
    with pytest.raises(ActionFailedError, match="create grafana route") as exc:
        await ActionRunner(store).run_all([failing, later])
    assert isinstance(exc.value, ReconcileError)
    assert "api unavailable" in str(exc.value)


async def test_discover_jsonnet_libraries(
    store: InMemoryStore, process_config: ProcessConfigStore
) -> None:
    """Test config maps matching the library selector are recorded."""
    for name, labels in (
        ("zeta", {"grafana-jsonnet": "library"}),
        ("alpha", {"grafana-jsonnet": "library"}),
        ("other", {"app": "other"}),
    ):
        store.add_object(ConfigMap(name=name, namespace=NAMESPACE, labels=labels))
    store.add_object(
        ConfigMap(
            name="elsewhere",
            namespace="default",
            labels={"grafana-jsonnet": "library"},
        )
    )
    grafana = make_grafana(
        jsonnet=JsonnetConfig(
            library_label_selector=LabelSelector(
                match_labels={"grafana-jsonnet": "library"}
            )
        )
    )

    await JsonnetLibraryDiscovery(store, process_config).discover(grafana)
    assert process_config.get_config_item(CONFIG_JSONNET_LIBRARIES) == {
        NAMESPACE: ["alpha", "zeta"]
    }


async def test_discover_without_selector(
    store: InMemoryStore, process_config: ProcessConfigStore
) -> None:
    await JsonnetLibraryDiscovery(store, process_config).discover(make_grafana())
    assert process_config.get_config_item(CONFIG_JSONNET_LIBRARIES) is None
