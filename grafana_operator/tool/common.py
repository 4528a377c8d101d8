"""Shared helpers for command line actions."""

import pathlib
from argparse import ArgumentParser
from typing import Any, cast

import yaml

from grafana_operator.controller_state import StatePublisher
from grafana_operator.events import EventRecorder
from grafana_operator.loader import ResourceLoader
from grafana_operator.manifest import Grafana, GRAFANA_KIND
from grafana_operator.process_config import ProcessConfigStore
from grafana_operator.reconciler import GrafanaReconciler, create_reconciler
from grafana_operator.store import InMemoryStore


def add_path_flag(args: ArgumentParser) -> None:
    args.add_argument(
        "--path",
        help="File or directory with Grafana and dependent resource manifests",
        type=pathlib.Path,
        required=True,
    )


class LocalCluster:
    """An in-memory cluster seeded from manifests on disk."""

    def __init__(self) -> None:
        self.store = InMemoryStore()
        self.process_config = ProcessConfigStore()
        self.publisher = StatePublisher()
        self.recorder = EventRecorder()
        self.reconciler: GrafanaReconciler = create_reconciler(
            self.store, self.process_config, self.publisher, self.recorder
        )

    async def load(self, path: pathlib.Path) -> None:
        await ResourceLoader(self.store).load(path)

    def grafanas(self) -> list[Grafana]:
        return cast(list[Grafana], self.store.list_objects(GRAFANA_KIND))


def dump_yaml(doc: Any) -> str:
    return yaml.dump(doc, sort_keys=False, explicit_start=True)
