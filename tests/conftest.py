"""Shared test fixtures."""

import pytest

from grafana_operator.controller_state import StatePublisher
from grafana_operator.events import EventRecorder
from grafana_operator.manifest import (
    Grafana,
    GrafanaClient,
    GrafanaSpec,
    LabelSelector,
    Route,
    Service,
    ServicePort,
    GRAFANA_ROUTE_NAME,
    GRAFANA_SERVICE_NAME,
)
from grafana_operator.process_config import ProcessConfigStore
from grafana_operator.reconciler import GrafanaReconciler, create_reconciler
from grafana_operator.store import InMemoryStore

NAMESPACE = "monitoring"


@pytest.fixture(name="store")
def store_fixture() -> InMemoryStore:
    """Create an in-memory store for testing."""
    return InMemoryStore()


@pytest.fixture(name="process_config")
def process_config_fixture() -> ProcessConfigStore:
    return ProcessConfigStore()


@pytest.fixture(name="publisher")
def publisher_fixture() -> StatePublisher:
    return StatePublisher()


@pytest.fixture(name="recorder")
def recorder_fixture() -> EventRecorder:
    return EventRecorder()


@pytest.fixture(name="reconciler")
def reconciler_fixture(
    store: InMemoryStore,
    process_config: ProcessConfigStore,
    publisher: StatePublisher,
    recorder: EventRecorder,
) -> GrafanaReconciler:
    """Create a reconciler working against the in-memory store."""
    return create_reconciler(store, process_config, publisher, recorder)


def make_grafana(
    name: str = "grafana", timeout_seconds: int | None = None, **spec_kwargs
) -> Grafana:
    """Create a Grafana object with a dashboard label selector."""
    spec = GrafanaSpec(
        dashboard_label_selector=[LabelSelector(match_labels={"app": "grafana"})],
        **spec_kwargs,
    )
    if timeout_seconds is not None:
        spec.client = GrafanaClient(timeout_seconds=timeout_seconds)
    return Grafana(name=name, namespace=NAMESPACE, spec=spec)


def make_service(cluster_ip: str | None = "10.0.0.10", port: int = 3000) -> Service:
    return Service(
        name=GRAFANA_SERVICE_NAME,
        namespace=NAMESPACE,
        cluster_ip=cluster_ip,
        ports=[ServicePort(port=port, name="grafana")],
        labels={"app": "grafana"},
    )


def make_route(host: str = "grafana.example.com") -> Route:
    return Route(
        name=GRAFANA_ROUTE_NAME,
        namespace=NAMESPACE,
        host=host,
        labels={"app": "grafana"},
    )
