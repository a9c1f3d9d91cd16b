"""Test helpers for smartdns-deploy tools."""

import pathlib
import sys

from smartdns_deploy.command import Command, run

SMARTDNS_DEPLOY = [sys.executable, "-m", "smartdns_deploy"]


async def run_command(
    args: list[str],
    cwd: pathlib.Path | None = None,
    env: dict[str, str] | None = None,
) -> str:
    return await run(Command(SMARTDNS_DEPLOY + args, cwd=cwd, env=env))
