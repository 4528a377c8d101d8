"""Representation of the objects watched and managed by the controller.

The managed object is a `Grafana` custom resource holding the user's desired
state plus the server observed status. The controller also reads a small set
of dependent objects (Service, Ingress, Route, ConfigMap) that describe the
network surfaces and configuration of the running instance.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "Phase",
    "LabelSelector",
    "Grafana",
    "GrafanaSpec",
    "GrafanaStatus",
    "GrafanaDashboardRef",
    "Service",
    "Ingress",
    "Route",
    "ConfigMap",
    "parse_raw_obj",
    "get_grafana_port",
]

_LOGGER = logging.getLogger(__name__)


# Match a prefix of apiVersion to ensure we have the right type of object.
GRAFANA_DOMAIN = "integreatly.org"
ROUTE_DOMAIN = "route.openshift.io"
INGRESS_DOMAINS = ("networking.k8s.io", "extensions")
GRAFANA_KIND = "Grafana"
SERVICE_KIND = "Service"
INGRESS_KIND = "Ingress"
ROUTE_KIND = "Route"
CONFIG_MAP_KIND = "ConfigMap"

# Names of the dependent objects created for a Grafana instance
GRAFANA_SERVICE_NAME = "grafana-service"
GRAFANA_INGRESS_NAME = "grafana-ingress"
GRAFANA_ROUTE_NAME = "grafana-route"

DEFAULT_GRAFANA_PORT = 3000


def _check_version(doc: dict[str, Any], version: str | tuple[str, ...]) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


def _parse_metadata(cls: type, doc: dict[str, Any]) -> tuple[str, str, dict[str, Any]]:
    """Return the name, namespace and metadata of a namespaced object."""
    if not (metadata := doc.get("metadata")):
        raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
    if not (name := metadata.get("name")):
        raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
    if not (namespace := metadata.get("namespace")):
        raise InputException(
            f"Invalid {cls.__name__} missing metadata.namespace: {doc}"
        )
    return name, namespace, metadata


def _parse_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise InputException(f"Invalid integer for {field_name}: {value!r}") from err


def _resource_version(metadata: dict[str, Any]) -> str | None:
    if (version := metadata.get("resourceVersion")) is not None:
        return str(version)
    return None


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized manifest."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


class Phase(StrEnum):
    """Coarse grained health of a Grafana instance persisted in its status."""

    RECONCILING = "reconciling"
    FAILING = "failing"


@dataclass
class LabelSelectorRequirement(BaseManifest):
    """A single set based label requirement."""

    key: str
    operator: str
    values: list[str] = field(default_factory=list)

    def matches(self, labels: dict[str, str]) -> bool:
        """Return True if the labels satisfy the requirement."""
        if self.operator == "In":
            return labels.get(self.key) in self.values
        if self.operator == "NotIn":
            return labels.get(self.key) not in self.values
        if self.operator == "Exists":
            return self.key in labels
        if self.operator == "DoesNotExist":
            return self.key not in labels
        raise InputException(f"Unsupported label selector operator: {self.operator}")


@dataclass
class LabelSelector(BaseManifest):
    """A kubernetes label selector."""

    match_labels: dict[str, str] | None = None
    """Labels that must all be present with the given value."""

    match_expressions: list[LabelSelectorRequirement] | None = None
    """Set based requirements that must all hold."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "LabelSelector":
        """Parse a label selector from a kubernetes resource."""
        expressions: list[LabelSelectorRequirement] | None = None
        if (raw_expressions := doc.get("matchExpressions")) is not None:
            expressions = []
            for expr in raw_expressions:
                if not (key := expr.get("key")) or not (op := expr.get("operator")):
                    raise InputException(
                        f"Invalid label selector expression missing key or operator: {expr}"
                    )
                expressions.append(
                    LabelSelectorRequirement(
                        key=key, operator=op, values=list(expr.get("values") or [])
                    )
                )
        return cls(
            match_labels=doc.get("matchLabels"),
            match_expressions=expressions,
        )

    def matches(self, labels: dict[str, str] | None) -> bool:
        """Return True if the labels are selected by this selector."""
        labels = labels or {}
        for key, value in (self.match_labels or {}).items():
            if labels.get(key) != value:
                return False
        return all(expr.matches(labels) for expr in self.match_expressions or ())


@dataclass
class GrafanaDashboardRef(BaseManifest):
    """Reference to a dashboard installed into a Grafana instance."""

    name: str
    """The name of the GrafanaDashboard object."""

    namespace: str
    """The namespace of the GrafanaDashboard object."""

    uid: str = ""
    """The uid of the dashboard inside Grafana."""

    hash: str = ""
    """Hash of the dashboard contents when last imported."""

    folder_name: str | None = None
    """Folder the dashboard is installed into."""


@dataclass
class GrafanaClient(BaseManifest):
    """Options for the client the controller uses to talk to Grafana."""

    timeout_seconds: int | None = None
    """Client timeout, the default is used when unset or negative."""

    prefer_service: bool = False
    """Skip routes and ingresses and always use the service."""


@dataclass
class GrafanaIngress(BaseManifest):
    """Ingress options for a Grafana instance."""

    enabled: bool = False
    hostname: str | None = None


@dataclass
class GrafanaRoute(BaseManifest):
    """Route options for a Grafana instance."""

    enabled: bool = False
    hostname: str | None = None


@dataclass
class GrafanaServiceSpec(BaseManifest):
    """Service options for a Grafana instance."""

    port: int | None = None


@dataclass
class GrafanaConfig(BaseManifest):
    """The subset of grafana.ini options the controller needs."""

    http_port: int | None = None


@dataclass
class JsonnetConfig(BaseManifest):
    """Options for discovering jsonnet libraries."""

    library_label_selector: LabelSelector | None = None


@dataclass
class GrafanaSpec(BaseManifest):
    """Desired state of a Grafana instance."""

    dashboard_label_selector: list[LabelSelector] = field(default_factory=list)
    dashboard_namespace_selector: LabelSelector | None = None
    client: GrafanaClient | None = None
    ingress: GrafanaIngress | None = None
    route: GrafanaRoute | None = None
    service: GrafanaServiceSpec | None = None
    config: GrafanaConfig | None = None
    jsonnet: JsonnetConfig | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "GrafanaSpec":
        """Parse the spec of a Grafana resource."""
        namespace_selector: LabelSelector | None = None
        if (raw := doc.get("dashboardNamespaceSelector")) is not None:
            namespace_selector = LabelSelector.parse_doc(raw)
        client: GrafanaClient | None = None
        if (raw := doc.get("client")) is not None:
            client = GrafanaClient(
                timeout_seconds=_parse_int(raw.get("timeout"), "client.timeout"),
                prefer_service=bool(raw.get("preferService", False)),
            )
        ingress: GrafanaIngress | None = None
        if (raw := doc.get("ingress")) is not None:
            ingress = GrafanaIngress(
                enabled=bool(raw.get("enabled", False)),
                hostname=raw.get("hostname"),
            )
        route: GrafanaRoute | None = None
        if (raw := doc.get("route")) is not None:
            route = GrafanaRoute(
                enabled=bool(raw.get("enabled", False)),
                hostname=raw.get("hostname"),
            )
        service: GrafanaServiceSpec | None = None
        if (raw := doc.get("service")) is not None:
            service = GrafanaServiceSpec(
                port=_parse_int(raw.get("port"), "service.port")
            )
        config: GrafanaConfig | None = None
        if (raw := doc.get("config")) is not None:
            http_port = (raw.get("server") or {}).get("http_port")
            config = GrafanaConfig(
                http_port=_parse_int(http_port, "config.server.http_port")
            )
        jsonnet: JsonnetConfig | None = None
        if (raw := doc.get("jsonnet")) is not None:
            selector = raw.get("libraryLabelSelector")
            jsonnet = JsonnetConfig(
                library_label_selector=(
                    LabelSelector.parse_doc(selector) if selector is not None else None
                )
            )
        return cls(
            dashboard_label_selector=[
                LabelSelector.parse_doc(sel)
                for sel in doc.get("dashboardLabelSelector") or ()
            ],
            dashboard_namespace_selector=namespace_selector,
            client=client,
            ingress=ingress,
            route=route,
            service=service,
            config=config,
            jsonnet=jsonnet,
        )


@dataclass
class GrafanaStatus(BaseManifest):
    """Observed status of a Grafana instance."""

    phase: Phase | None = None
    message: str = ""
    installed_dashboards: dict[str, list[GrafanaDashboardRef]] | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "GrafanaStatus":
        """Parse the status of a Grafana resource."""
        phase: Phase | None = None
        if raw_phase := doc.get("phase"):
            try:
                phase = Phase(raw_phase)
            except ValueError as err:
                raise InputException(f"Invalid Grafana status phase: {raw_phase}") from err
        dashboards: dict[str, list[GrafanaDashboardRef]] | None = None
        if (raw := doc.get("installedDashboards")) is not None:
            dashboards = {
                namespace: [
                    GrafanaDashboardRef(
                        name=ref["name"],
                        namespace=ref.get("namespace", namespace),
                        uid=ref.get("uid", ""),
                        hash=ref.get("hash", ""),
                        folder_name=ref.get("folderName"),
                    )
                    for ref in refs or ()
                ]
                for namespace, refs in raw.items()
            }
        return cls(
            phase=phase,
            message=doc.get("message", ""),
            installed_dashboards=dashboards,
        )


@dataclass
class Grafana(BaseManifest):
    """A Grafana instance declared by a user."""

    kind: ClassVar[str] = GRAFANA_KIND
    """The kind of the object."""

    name: str
    """The name of the Grafana instance."""

    namespace: str
    """The namespace of the Grafana instance."""

    spec: GrafanaSpec = field(default_factory=GrafanaSpec)
    """The desired state."""

    status: GrafanaStatus = field(default_factory=GrafanaStatus)
    """The observed state."""

    resource_version: str | None = None
    """Version assigned by the store on every write."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Grafana":
        """Parse a Grafana from a kubernetes resource."""
        _check_version(doc, GRAFANA_DOMAIN)
        name, namespace, metadata = _parse_metadata(cls, doc)
        return cls(
            name=name,
            namespace=namespace,
            spec=GrafanaSpec.parse_doc(doc.get("spec") or {}),
            status=GrafanaStatus.parse_doc(doc.get("status") or {}),
            resource_version=_resource_version(metadata),
        )

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(self.kind, self.namespace, self.name)


@dataclass
class ServicePort(BaseManifest):
    """A port exposed by a Service."""

    port: int
    name: str | None = None


@dataclass
class Service(BaseManifest):
    """A kubernetes Service in front of a Grafana instance."""

    kind: ClassVar[str] = SERVICE_KIND

    name: str
    namespace: str
    cluster_ip: str | None = None
    """The cluster IP, or the sentinel `None` for headless services."""

    ports: list[ServicePort] = field(default_factory=list)
    labels: dict[str, str] | None = None
    resource_version: str | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Service":
        """Parse a Service from a kubernetes resource."""
        _check_version(doc, "v1")
        name, namespace, metadata = _parse_metadata(cls, doc)
        spec = doc.get("spec") or {}
        ports: list[ServicePort] = []
        for raw_port in spec.get("ports") or ():
            if (port := _parse_int(raw_port.get("port"), "spec.ports.port")) is None:
                raise InputException(f"Invalid Service {name} port missing port: {doc}")
            ports.append(ServicePort(port=port, name=raw_port.get("name")))
        return cls(
            name=name,
            namespace=namespace,
            cluster_ip=spec.get("clusterIP"),
            ports=ports,
            labels=metadata.get("labels"),
            resource_version=_resource_version(metadata),
        )


@dataclass
class LoadBalancerIngress(BaseManifest):
    """An ingress point of a load balancer."""

    hostname: str = ""
    ip: str = ""


@dataclass
class Ingress(BaseManifest):
    """A kubernetes Ingress exposing a Grafana instance."""

    kind: ClassVar[str] = INGRESS_KIND

    name: str
    namespace: str
    hostname: str | None = None
    """Host of the first ingress rule."""

    load_balancer: list[LoadBalancerIngress] = field(default_factory=list)
    """Load balancer ingress points reported in the status."""

    labels: dict[str, str] | None = None
    resource_version: str | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Ingress":
        """Parse an Ingress from a kubernetes resource."""
        _check_version(doc, INGRESS_DOMAINS)
        name, namespace, metadata = _parse_metadata(cls, doc)
        rules = (doc.get("spec") or {}).get("rules") or []
        load_balancer = ((doc.get("status") or {}).get("loadBalancer") or {}).get(
            "ingress"
        ) or []
        return cls(
            name=name,
            namespace=namespace,
            hostname=rules[0].get("host") if rules else None,
            load_balancer=[
                LoadBalancerIngress(
                    hostname=entry.get("hostname") or "", ip=entry.get("ip") or ""
                )
                for entry in load_balancer
            ],
            labels=metadata.get("labels"),
            resource_version=_resource_version(metadata),
        )


@dataclass
class Route(BaseManifest):
    """An OpenShift Route exposing a Grafana instance."""

    kind: ClassVar[str] = ROUTE_KIND

    name: str
    namespace: str
    host: str = ""
    labels: dict[str, str] | None = None
    resource_version: str | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Route":
        """Parse a Route from a kubernetes resource."""
        _check_version(doc, ROUTE_DOMAIN)
        name, namespace, metadata = _parse_metadata(cls, doc)
        return cls(
            name=name,
            namespace=namespace,
            host=(doc.get("spec") or {}).get("host") or "",
            labels=metadata.get("labels"),
            resource_version=_resource_version(metadata),
        )


@dataclass
class ConfigMap(BaseManifest):
    """A ConfigMap is an API object used to store data in key-value pairs."""

    kind: ClassVar[str] = CONFIG_MAP_KIND

    name: str
    namespace: str
    data: dict[str, Any] | None = None
    labels: dict[str, str] | None = None
    resource_version: str | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ConfigMap":
        """Parse a config map object from a kubernetes resource."""
        _check_version(doc, "v1")
        name, namespace, metadata = _parse_metadata(cls, doc)
        return cls(
            name=name,
            namespace=namespace,
            data=doc.get("data"),
            labels=metadata.get("labels"),
            resource_version=_resource_version(metadata),
        )


def parse_raw_obj(obj: dict[str, Any]) -> BaseManifest:
    """Parse a raw kubernetes object into a BaseManifest."""
    if not (kind := obj.get("kind")):
        raise InputException(f"Invalid object missing kind: {obj}")
    if kind == GRAFANA_KIND:
        return Grafana.parse_doc(obj)
    if kind == SERVICE_KIND:
        return Service.parse_doc(obj)
    if kind == INGRESS_KIND:
        return Ingress.parse_doc(obj)
    if kind == ROUTE_KIND:
        return Route.parse_doc(obj)
    if kind == CONFIG_MAP_KIND:
        return ConfigMap.parse_doc(obj)
    raise InputException(f"Unsupported object kind '{kind}': {obj}")


def get_grafana_port(grafana: Grafana) -> int:
    """Return the port the Grafana service listens on."""
    spec = grafana.spec
    if spec.service is not None and spec.service.port:
        return spec.service.port
    if spec.config is not None and spec.config.http_port:
        return spec.config.http_port
    return DEFAULT_GRAFANA_PORT
