"""Common utilities for smartdns-deploy actions."""

import pathlib
from typing import TextIO
import sys

from smartdns_deploy.config import ProjectConfig
from smartdns_deploy.manifest import WorkloadPhase, WorkloadStatus
from smartdns_deploy.orchestrator import Orchestrator

from .format import PrintFormatter


def build_orchestrator(
    project_dir: pathlib.Path | None, namespace: str | None
) -> Orchestrator:
    """Create the orchestrator for the project directory flags."""
    config = ProjectConfig(root=(project_dir or pathlib.Path.cwd()).absolute())
    if namespace:
        config.namespace = namespace
    return Orchestrator(config)


def print_workloads(
    workloads: dict[str, WorkloadStatus], file: TextIO = sys.stdout
) -> None:
    """Print a table with the rollout phase of every workload."""
    PrintFormatter(["name", "phase", "ready"]).print(
        [
            {
                "name": status.name,
                "phase": status.phase,
                "ready": status.last_observed_replicas,
            }
            for status in workloads.values()
        ],
        file=file,
    )


def all_ready(workloads: dict[str, WorkloadStatus]) -> bool:
    """Return True if every workload finished its rollout."""
    return all(status.phase == WorkloadPhase.READY for status in workloads.values())
