"""Smartdns-deploy deploy action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import cast

from smartdns_deploy.manifest import DeployReport, Outcome, Overlay
from smartdns_deploy.orchestrator import DeployOptions, Orchestrator, url_host
from smartdns_deploy.target import looks_like_address

from . import format
from .common import build_orchestrator, print_workloads
from .format import JsonFormatter, YamlFormatter

_LOGGER = logging.getLogger(__name__)

DEGRADED_LOG_TAIL = 5


def split_deploy_args(
    first: str | None, second: str | None
) -> tuple[str | None, str | None]:
    """Return the address and overlay name from the positional arguments.

    The first argument is an address when it looks like an IP literal, in which
    case the second argument is the overlay. Otherwise it is the overlay.
    """
    if first and looks_like_address(first):
        return first, second
    return None, first


def print_report(report: DeployReport) -> None:
    """Print a human readable summary of the deploy."""
    format.header("Rollout")
    print_workloads(report.workloads)

    format.header("Verification")
    for probe in report.probes:
        if probe.passed is None:
            format.warn(f"{probe.name} probe skipped (tool not installed)")
        elif probe.passed:
            format.success(f"{probe.name} probe passed ({probe.detail})")
        else:
            format.warn(f"{probe.name} probe failed ({probe.detail})")

    node = report.node_address
    host = url_host(node)
    if report.outcome == Outcome.HEALTHY:
        format.header("Done! Your DoH Smart DNS is running")
    else:
        format.header("Deployed with warnings")
    print()
    print(f"  DNS (plain):   {node}:30053")
    print(f"  DoH (HTTPS):   https://{host}:30443/dns-query")
    print(f"  Certificate:   {report.certificate_path} ({report.credential_origin})")
    print(f"  Config:        {report.fingerprint[:12]}...")
    print()
    print(f"  Test DNS:   dig @{node} -p 30053 xboxlive.com")
    print(f"  Test DoH:   curl -ks https://{host}:30443/health")
    print("  Status:     smartdns-deploy status")
    print("  Destroy:    smartdns-deploy destroy")
    print()


async def print_recent_logs(orchestrator: Orchestrator) -> None:
    """Print the last few log lines of every workload."""
    format.warn("Showing recent pod logs:")
    logs = await orchestrator.logs(tail=DEGRADED_LOG_TAIL)
    for name, content in logs.items():
        print(f"--- {name} (last {DEGRADED_LOG_TAIL} lines) ---")
        print(content.rstrip() if content else "  (no logs)")
    print()


class DeployAction:
    """Smartdns-deploy deploy action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "deploy",
                help="Render, apply and verify the stack (default command)",
                description="""Resolve the target address, provision TLS
                    certificates, render the overlay, apply it and wait for
                    every workload to become ready.""",
            ),
        )
        args.add_argument(
            "target",
            nargs="?",
            help="Server IP address, or the overlay name when no address is given",
        )
        args.add_argument(
            "overlay",
            nargs="?",
            help=f"Overlay to deploy: {', '.join(str(o) for o in Overlay)}",
        )
        args.add_argument(
            "--no-input",
            action="store_true",
            default=False,
            help="Never prompt for the server address",
        )
        args.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Seconds each workload has to become ready",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["text", "yaml", "json"],
            default="text",
            help="Output format of the final report",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        target: str | None,
        overlay: str | None,
        no_input: bool,
        timeout: float | None,
        output: str,
        project_dir: pathlib.Path | None,
        namespace: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        address, overlay_name = split_deploy_args(target, overlay)
        orchestrator = build_orchestrator(project_dir, namespace)
        options = DeployOptions(
            address=address,
            overlay=Overlay.parse(overlay_name),
            interactive=not no_input and sys.stdin.isatty(),
            timeout=timeout,
        )
        report = await orchestrator.deploy(options)

        if output == "yaml":
            YamlFormatter().print([report.compact_dict()])
            return
        if output == "json":
            JsonFormatter().print(report.compact_dict())
            return

        print_report(report)
        if report.outcome == Outcome.DEGRADED:
            await print_recent_logs(orchestrator)
