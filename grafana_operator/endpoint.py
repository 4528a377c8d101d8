"""Resolves the URL the dashboard controller uses to reach a Grafana instance."""

import logging

from .cluster_state import ClusterState
from .exceptions import AdminUrlNotFoundError
from .manifest import Grafana, get_grafana_port

__all__ = ["resolve_admin_url"]

_LOGGER = logging.getLogger(__name__)

HEADLESS_CLUSTER_IP = "None"


def resolve_admin_url(state: ClusterState, grafana: Grafana) -> str:
    """Pick one externally reachable URL for the Grafana instance.

    The first match wins:
      1. The route host, unless the service is preferred.
      2. The ingress, unless the service is preferred: the hostname from the
         spec, else the first load balancer entry (hostname, else IP).
      3. The service cluster IP, or the service name for headless services.

    Raises:
        AdminUrlNotFoundError: If none of the above exist.
    """
    prefer_service = False
    if grafana.spec.client is not None:
        prefer_service = grafana.spec.client.prefer_service

    # The route also works when running the controller outside of the cluster
    if state.grafana_route is not None and not prefer_service:
        return f"https://{state.grafana_route.host}"

    if state.grafana_ingress is not None and not prefer_service:
        ingress_spec = grafana.spec.ingress
        if ingress_spec is not None and ingress_spec.hostname:
            return f"https://{ingress_spec.hostname}"

        # Only the first load balancer entry is considered
        for entry in state.grafana_ingress.load_balancer:
            if entry.hostname:
                return f"https://{entry.hostname}"
            return f"https://{entry.ip}"

    port = get_grafana_port(grafana)
    service = state.grafana_service
    if service is not None:
        if service.cluster_ip and service.cluster_ip != HEADLESS_CLUSTER_IP:
            return f"http://{service.cluster_ip}:{port}"
        return f"http://{service.name}:{port}"

    _LOGGER.debug("No route, ingress or service found for %s", grafana.resource_id)
    raise AdminUrlNotFoundError(
        f"no reachable endpoint for {grafana.resource_id.namespaced_name}"
    )
