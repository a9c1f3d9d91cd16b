"""Smartdns-deploy help action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

USAGE = """\
DoH Smart DNS - Kubernetes deploy

Usage: smartdns-deploy [command] [options]

Commands:
  deploy [IP] [overlay]  Deploy everything (default)
  status                 Show pod and service status
  destroy                Delete everything (aliases: delete, remove)
  logs [component]       Show logs (all, or a component name)
  restart                Restart all workloads
  help                   Show this help

Overlays:
  base          Default deployment (single replica)
  production    Production tuned (resource limits, 2 nginx replicas)

Examples:
  smartdns-deploy 203.0.113.7
  smartdns-deploy deploy 203.0.113.7 production
  VPS_IP=203.0.113.7 smartdns-deploy
  smartdns-deploy logs coredns-smartdns
  smartdns-deploy destroy
"""


class HelpAction:
    """Smartdns-deploy help action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser("help", help="Show usage and examples"),
        )
        args.set_defaults(cls=cls)
        return args

    async def run(self, **kwargs) -> None:  # type: ignore[no-untyped-def]
        """Async Action implementation."""
        print(USAGE, end="")
