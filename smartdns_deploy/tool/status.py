"""Smartdns-deploy status action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from smartdns_deploy.orchestrator import StatusSnapshot, url_host

from . import format
from .common import build_orchestrator
from .format import PrintFormatter

_LOGGER = logging.getLogger(__name__)


def print_status(snapshot: StatusSnapshot, namespace: str) -> None:
    """Print the resource listings and rollout progress."""
    format.header(f"DoH Smart DNS Status ({namespace})")
    for kind, listing in snapshot.listings.items():
        print()
        print(f"{kind.capitalize()}:")
        if listing is None or not listing.strip():
            print(f"  No {kind} found")
        else:
            print(listing.rstrip())

    if snapshot.rollouts:
        print()
        print("Rollouts:")
        PrintFormatter(["name", "ready", "up-to-date", "available"]).print(
            [
                {
                    "name": rollout.name,
                    "ready": f"{rollout.ready_replicas}/{rollout.desired_replicas}",
                    "up-to-date": rollout.updated_replicas,
                    "available": rollout.available_replicas,
                }
                for rollout in snapshot.rollouts
            ]
        )

    if snapshot.node_address:
        print()
        print("Endpoints:")
        print(f"  DNS:   {snapshot.node_address}:30053")
        print(f"  DoH:   https://{url_host(snapshot.node_address)}:30443/dns-query")
        print()
        print("Test:")
        print(f"  dig @{snapshot.node_address} -p 30053 xboxlive.com")
        print(f"  curl -ks https://{url_host(snapshot.node_address)}:30443/health")
    print()


class StatusAction:
    """Smartdns-deploy status action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "status",
                help="Show the pods, services and rollouts in the namespace",
                description="Print what is currently running in the namespace.",
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
        snapshot = await orchestrator.status()
        print_status(snapshot, orchestrator.config.namespace)
