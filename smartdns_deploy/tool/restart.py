"""Smartdns-deploy restart action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from . import format
from .common import all_ready, build_orchestrator, print_workloads

_LOGGER = logging.getLogger(__name__)


class RestartAction:
    """Smartdns-deploy restart action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "restart",
                help="Restart all workloads and wait for them",
                description="Trigger a rolling restart of every workload.",
            ),
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        project_dir: pathlib.Path | None,
        namespace: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        orchestrator = build_orchestrator(project_dir, namespace)
        format.header("Restarting DoH Smart DNS")
        workloads = await orchestrator.restart()
        print_workloads(workloads)
        if all_ready(workloads):
            format.success("All components restarted")
        else:
            format.warn("Some components did not become ready in time")
        print()
