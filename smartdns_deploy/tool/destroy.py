"""Smartdns-deploy destroy action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from . import format
from .common import build_orchestrator

_LOGGER = logging.getLogger(__name__)


class DestroyAction:
    """Smartdns-deploy destroy action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "destroy",
                aliases=["delete", "remove"],
                help="Delete the namespace and the generated files",
                description="""Delete the namespace with every resource in it and
                    remove the generated hosts ConfigMap. Certificates and the
                    saved server address are kept.""",
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
        format.header("Destroying DoH Smart DNS")
        await orchestrator.destroy()
        format.success(f"Namespace {orchestrator.config.namespace} deleted")
        print()
