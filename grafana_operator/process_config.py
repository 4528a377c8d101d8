"""Process wide configuration shared between controllers.

The Grafana controller and the dashboard controller exchange a small amount
of state that outlives a single reconciliation cycle: whether dashboards have
been synced, the dashboards installed per namespace, and the dashboard label
selectors. A `ProcessConfigStore` is created once per process and passed to
every component that needs it.

Each operation holds the store lock for its own duration only. Writers merge
into the existing values instead of replacing them so that concurrent cycles
for different objects do not clobber each other.
"""

import copy
import logging
import threading
from typing import Any

from .manifest import GrafanaDashboardRef

__all__ = [
    "ProcessConfigStore",
    "CONFIG_DASHBOARD_LABEL_SELECTOR",
    "CONFIG_GRAFANA_DASHBOARDS_SYNCED",
    "CONFIG_JSONNET_LIBRARIES",
]

_LOGGER = logging.getLogger(__name__)

CONFIG_DASHBOARD_LABEL_SELECTOR = "grafana.dashboard.selector"
CONFIG_GRAFANA_DASHBOARDS_SYNCED = "grafana.dashboards.synced"
CONFIG_JSONNET_LIBRARIES = "grafana.jsonnet.libraries"

DashboardMap = dict[str, list[GrafanaDashboardRef]]


class ProcessConfigStore:
    """Synchronized key-value config and dashboard cache."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, Any] = {}
        self._dashboards: DashboardMap | None = None

    def set_config_item(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = copy.deepcopy(value)

    def merge_config_item(self, key: str, values: dict[str, Any]) -> None:
        """Merge entries into a mapping item, creating it if needed."""
        with self._lock:
            current = self._values.get(key)
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update(copy.deepcopy(values))
            self._values[key] = merged

    def remove_config_entry(self, key: str, entry: str) -> None:
        """Remove one entry of a mapping item, dropping the item once empty."""
        with self._lock:
            current = self._values.get(key)
            if not isinstance(current, dict) or entry not in current:
                return
            remaining = {k: v for k, v in current.items() if k != entry}
            if remaining:
                self._values[key] = remaining
            else:
                del self._values[key]

    def get_config_item(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._values:
                return default
            return copy.deepcopy(self._values[key])

    def get_config_bool(self, key: str, default: bool = False) -> bool:
        """Return a boolean item, or the default if unset or not a boolean."""
        with self._lock:
            value = self._values.get(key)
        if isinstance(value, bool):
            return value
        return default

    def remove_config_item(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def get_dashboards(self) -> DashboardMap | None:
        """Return a copy of the installed dashboards, or None if never set."""
        with self._lock:
            return copy.deepcopy(self._dashboards)

    def set_dashboards(self, dashboards: DashboardMap) -> None:
        with self._lock:
            self._dashboards = copy.deepcopy(dashboards)

    def ensure_dashboards(self) -> bool:
        """Initialize an empty dashboard map if none exists.

        Returns True if the map was created by this call.
        """
        with self._lock:
            if self._dashboards is not None:
                return False
            self._dashboards = {}
            return True

    def merge_dashboards(
        self, namespace: str, refs: list[GrafanaDashboardRef]
    ) -> None:
        """Add or replace dashboards in a namespace, keyed by dashboard name."""
        with self._lock:
            if self._dashboards is None:
                self._dashboards = {}
            existing = {ref.name: ref for ref in self._dashboards.get(namespace, [])}
            for ref in refs:
                existing[ref.name] = copy.deepcopy(ref)
            self._dashboards[namespace] = sorted(
                existing.values(), key=lambda ref: ref.name
            )

    def remove_dashboard(self, namespace: str, name: str) -> None:
        with self._lock:
            if self._dashboards is None or namespace not in self._dashboards:
                return
            remaining = [
                ref for ref in self._dashboards[namespace] if ref.name != name
            ]
            if remaining:
                self._dashboards[namespace] = remaining
            else:
                del self._dashboards[namespace]

    def mark_dashboards_synced(self) -> None:
        """Record that the dashboard controller has synced cluster dashboards."""
        with self._lock:
            self._values[CONFIG_GRAFANA_DASHBOARDS_SYNCED] = True

    def invalidate_dashboards(self) -> None:
        """Force every cached dashboard to be imported again.

        Hashes are cleared so no dashboard looks up to date, and the synced
        flag is reset until the dashboard controller completes a full sync.
        """
        _LOGGER.debug("Invalidating cached dashboards")
        with self._lock:
            self._values[CONFIG_GRAFANA_DASHBOARDS_SYNCED] = False
            if self._dashboards is None:
                return
            for refs in self._dashboards.values():
                for ref in refs:
                    ref.hash = ""

    def cleanup(self) -> None:
        """Drop all dashboard state, used when the Grafana instance is gone."""
        _LOGGER.debug("Cleaning up dashboard state")
        with self._lock:
            self._values[CONFIG_GRAFANA_DASHBOARDS_SYNCED] = False
            self._dashboards = None
