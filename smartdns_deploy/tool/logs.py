"""Smartdns-deploy logs action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from smartdns_deploy.orchestrator import ALL_COMPONENTS

from .common import build_orchestrator

_LOGGER = logging.getLogger(__name__)


class LogsAction:
    """Smartdns-deploy logs action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "logs",
                help="Show recent logs of one or all components",
                description="Print the recent log lines of the component pods.",
            ),
        )
        args.add_argument(
            "component",
            nargs="?",
            default=ALL_COMPONENTS,
            help="Component name such as doh-nginx, or 'all' (default)",
        )
        args.add_argument(
            "--tail",
            type=int,
            default=None,
            help="Number of lines per component",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        component: str,
        tail: int | None,
        project_dir: pathlib.Path | None,
        namespace: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        orchestrator = build_orchestrator(project_dir, namespace)
        logs = await orchestrator.logs(component, tail)
        for name, content in logs.items():
            if len(logs) > 1:
                print(f"=== {name} ===")
            print(content.rstrip() if content else "  (no logs)")
            if len(logs) > 1:
                print()
