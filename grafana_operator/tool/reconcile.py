"""Command line tool to run one reconciliation cycle for every Grafana."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from .common import LocalCluster, add_path_flag, dump_yaml

_LOGGER = logging.getLogger(__name__)


class ReconcileAction:
    """Reconcile every Grafana instance once and print the outcome."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Reconcile each Grafana instance once",
                description="Run one reconciliation cycle for each Grafana instance and print its status and the published controller state.",
            ),
        )
        add_path_flag(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        cluster = LocalCluster()
        await cluster.load(path)
        grafanas = cluster.grafanas()
        if not grafanas:
            print("No Grafana resources found")
            return

        for grafana in grafanas:
            result = await cluster.reconciler.reconcile(grafana.resource_id)
            _LOGGER.debug("Reconciled %s: %s", grafana.resource_id, result)
            updated = cluster.store.get_object(grafana.resource_id, type(grafana))
            state = cluster.publisher.latest
            print(
                dump_yaml(
                    {
                        "grafana": grafana.resource_id.namespaced_name,
                        "status": updated.status.to_dict(),
                        "controllerState": state.to_dict() if state else None,
                        "requeueAfter": result.requeue_after,
                    }
                ),
                end="",
            )
