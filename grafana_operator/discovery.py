"""Discovery of config maps that a Grafana instance depends on.

Jsonnet libraries used to render dashboards are shipped as config maps in the
namespace of the Grafana instance and selected by a label selector. The names
of the discovered config maps are published through the process config store
for the dashboard controller.
"""

from abc import ABC, abstractmethod
import logging
from typing import cast

from .manifest import ConfigMap, Grafana, CONFIG_MAP_KIND
from .process_config import ProcessConfigStore, CONFIG_JSONNET_LIBRARIES
from .store import Store

__all__ = ["ConfigMapDiscovery", "JsonnetLibraryDiscovery"]

_LOGGER = logging.getLogger(__name__)


class ConfigMapDiscovery(ABC):
    """Discovers config maps a Grafana instance depends on."""

    @abstractmethod
    async def discover(self, grafana: Grafana) -> None:
        """Scan for dependent config maps and record them."""


class JsonnetLibraryDiscovery(ConfigMapDiscovery):
    """Discovers jsonnet library config maps selected by the instance."""

    def __init__(self, store: Store, config: ProcessConfigStore) -> None:
        self._store = store
        self._config = config

    async def discover(self, grafana: Grafana) -> None:
        """Record the jsonnet libraries selected by the instance, if any."""
        jsonnet = grafana.spec.jsonnet
        if jsonnet is None or jsonnet.library_label_selector is None:
            return
        selector = jsonnet.library_label_selector
        config_maps = cast(
            list[ConfigMap], self._store.list_objects(CONFIG_MAP_KIND, grafana.namespace)
        )
        libraries = sorted(cm.name for cm in config_maps if selector.matches(cm.labels))
        _LOGGER.debug(
            "Discovered %d jsonnet libraries for %s", len(libraries), grafana.resource_id
        )
        self._config.merge_config_item(
            CONFIG_JSONNET_LIBRARIES, {grafana.namespace: libraries}
        )
