"""Phase and status bookkeeping for Grafana objects."""

import logging

from .exceptions import ConflictError
from .manifest import Grafana, Phase
from .process_config import ProcessConfigStore, CONFIG_GRAFANA_DASHBOARDS_SYNCED
from .store import Store

__all__ = ["StatusTracker"]

_LOGGER = logging.getLogger(__name__)


class StatusTracker:
    """Moves the persisted status of a Grafana object to a new phase.

    Writes are skipped when the persisted status already matches, so repeated
    cycles over a converged object do not produce update storms.
    """

    def __init__(self, store: Store, config: ProcessConfigStore) -> None:
        self._store = store
        self._config = config

    def apply_status(self, grafana: Grafana, phase: Phase, message: str) -> bool:
        """Set the phase and message on the working copy and persist them.

        Returns True if the status was written, False if it was already up to
        date or another writer updated the object first.

        Raises:
            ObjectNotFoundError: If the object no longer exists.
            GrafanaOperatorException: If the status write fails for any
                reason other than a conflict.
        """
        grafana.status.phase = phase
        grafana.status.message = message
        if phase == Phase.RECONCILING:
            self._sync_installed_dashboards(grafana)

        persisted = self._store.get_object(grafana.resource_id, Grafana)
        if grafana.status == persisted.status:
            _LOGGER.debug("Status of %s is up to date", grafana.resource_id)
            return False

        try:
            updated = self._store.update_status(grafana)
        except ConflictError as err:
            _LOGGER.debug("Ignoring status conflict, object may be outdated: %s", err)
            return False
        grafana.resource_version = updated.resource_version
        _LOGGER.info("Updated status of %s to %s", grafana.resource_id, phase)
        return True

    def _sync_installed_dashboards(self, grafana: Grafana) -> None:
        # Only report dashboards once the dashboard controller had a chance to
        # sync them, otherwise keep the ones already in the status.
        if self._config.get_config_bool(CONFIG_GRAFANA_DASHBOARDS_SYNCED, False):
            grafana.status.installed_dashboards = self._config.get_dashboards() or {}
        elif self._config.ensure_dashboards():
            _LOGGER.debug("Initialized empty dashboard map")
