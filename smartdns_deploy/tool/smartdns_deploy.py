"""Command line tool for deploying the DoH Smart DNS stack to Kubernetes."""

import argparse
import asyncio
import logging
import pathlib
import sys
import traceback

from smartdns_deploy.exceptions import DeployException
from . import deploy, destroy, help, logs, restart, status

_LOGGER = logging.getLogger(__name__)

DEFAULT_COMMAND = "deploy"
COMMANDS = frozenset(
    {
        "deploy",
        "status",
        "destroy",
        "delete",
        "remove",
        "logs",
        "restart",
        "help",
        "-h",
        "--help",
    }
)
# Global flags that consume the following argument
_GLOBAL_VALUE_FLAGS = frozenset({"--log-level", "--project-dir", "--namespace"})


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smartdns-deploy",
        description="Deploy the DoH Smart DNS stack to a Kubernetes cluster.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    parser.add_argument(
        "--project-dir",
        type=pathlib.Path,
        default=None,
        help="Directory holding base/, overlays/ and coredns/ (default: cwd)",
    )
    parser.add_argument(
        "--namespace",
        default=None,
        help="Namespace the stack is deployed to",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    deploy.DeployAction.register(subparsers)
    status.StatusAction.register(subparsers)
    destroy.DestroyAction.register(subparsers)
    logs.LogsAction.register(subparsers)
    restart.RestartAction.register(subparsers)
    help.HelpAction.register(subparsers)
    return parser


def _implicit_deploy(argv: list[str]) -> list[str]:
    """Insert the deploy command when the first positional is not a command."""
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in _GLOBAL_VALUE_FLAGS:
            i += 2
            continue
        if any(arg.startswith(f"{flag}=") for flag in _GLOBAL_VALUE_FLAGS):
            i += 1
            continue
        if arg in COMMANDS:
            return argv
        break
    return argv[:i] + [DEFAULT_COMMAND] + argv[i:]


def main(argv: list[str] | None = None) -> None:
    """Smartdns-deploy command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(
        _implicit_deploy(list(sys.argv[1:] if argv is None else argv))
    )

    logging.basicConfig(
        level=args.log_level, format="%(asctime)s %(levelname)s %(message)s"
    )

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except DeployException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("smartdns-deploy error: ", err, file=sys.stderr)
        if err.remediation:
            print(err.remediation, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
