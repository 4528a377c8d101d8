"""Command line tool to run the controller and print published state."""

import asyncio
import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from grafana_operator.config import SchedulerConfig
from grafana_operator.controller import GrafanaController
from grafana_operator.scheduler import ReconcileScheduler

from .common import LocalCluster, add_path_flag, dump_yaml

_LOGGER = logging.getLogger(__name__)


class RunAction:
    """Run the controller for a while, printing each published state."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Run the controller against local manifests",
                description="Run the controller with requeues against the local manifests and print every published controller state.",
            ),
        )
        add_path_flag(args)
        args.add_argument(
            "--duration",
            help="Seconds to run before stopping",
            type=float,
            default=30.0,
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path,
        duration: float,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        cluster = LocalCluster()
        await cluster.load(path)
        scheduler = ReconcileScheduler(cluster.reconciler.reconcile, SchedulerConfig())
        controller = GrafanaController(cluster.store, scheduler)

        async def print_states() -> None:
            with cluster.publisher.subscribe() as subscription:
                async for state in subscription:
                    print(dump_yaml(state.to_dict()), end="", flush=True)

        printer = asyncio.create_task(print_states())
        controller.start()
        try:
            await asyncio.sleep(duration)
        finally:
            _LOGGER.info("Stopping controller")
            await controller.close()
            printer.cancel()
            try:
                await printer
            except asyncio.CancelledError:
                pass
