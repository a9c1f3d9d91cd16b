"""Rollout Controller applying rendered resources and waiting for them to converge.

Applying is a pass-through to the cluster, which reconciles declaratively.
What the controller adds is the health convergence loop: every managed
workload is polled concurrently until its rollout completes or its own
deadline passes. A workload that times out is reported as such and the other
workloads keep being watched; nothing is ever rolled back.
"""

import asyncio
import logging

from .config import RolloutConfig
from .exceptions import CommandException
from .kubectl import Platform
from .manifest import (
    ApplyReport,
    RenderedManifestSet,
    WorkloadPhase,
    WorkloadStatus,
)

__all__ = [
    "RolloutController",
]

_LOGGER = logging.getLogger(__name__)


class RolloutController:
    """Applies manifest sets and tracks the rollout of the managed workloads."""

    def __init__(self, platform: Platform, config: RolloutConfig | None = None) -> None:
        """Initialize RolloutController."""
        self._platform = platform
        self._config = config or RolloutConfig()

    async def apply(self, manifests: RenderedManifestSet) -> ApplyReport:
        """Apply the full resource set.

        A rejected set raises `ApplyRejectedError`; resources applied before
        the rejection stay applied.
        """
        _LOGGER.info(
            "Applying %d resources (%s overlay)",
            len(manifests.documents),
            manifests.overlay,
        )
        resources = await self._platform.apply(manifests.content)
        report = ApplyReport(resources=resources)
        _LOGGER.info(
            "All manifests applied, %d changed (config checksum: %s...)",
            len(report.changed),
            manifests.short_fingerprint,
        )
        return report

    async def _await_workload(self, status: WorkloadStatus, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not status.phase.terminal:
            try:
                rollout = await self._platform.rollout_status(status.name)
            except CommandException as err:
                # The workload may not have been created yet
                _LOGGER.debug("Unable to query %s: %s", status.name, err)
            else:
                status.last_observed_replicas = rollout.ready_replicas
                if rollout.ready:
                    status.phase = WorkloadPhase.READY
                    _LOGGER.info("%s: Ready", status.name)
                    break
                status.phase = WorkloadPhase.ROLLOUT_IN_PROGRESS
            if loop.time() >= deadline:
                status.phase = WorkloadPhase.TIMED_OUT
                _LOGGER.warning(
                    "%s: Timeout - check: kubectl describe deployment/%s",
                    status.name,
                    status.name,
                )
                break
            remaining = deadline - loop.time()
            await asyncio.sleep(min(self._config.poll_interval, remaining))

    async def await_health(
        self, workloads: list[str], timeout: float | None = None
    ) -> dict[str, WorkloadStatus]:
        """Wait for every workload to be rolled out, or its timeout to elapse."""
        timeout = self._config.timeout if timeout is None else timeout
        statuses = {name: WorkloadStatus(name=name) for name in workloads}
        await asyncio.gather(
            *(self._await_workload(status, timeout) for status in statuses.values())
        )
        return statuses

    async def restart(
        self, workloads: list[str], timeout: float | None = None
    ) -> dict[str, WorkloadStatus]:
        """Restart every workload and wait for the new pods."""
        for name in workloads:
            try:
                await self._platform.rollout_restart(name)
            except CommandException as err:
                _LOGGER.warning("Failed to restart %s: %s", name, err)
            else:
                _LOGGER.info("Restarted %s", name)
        timeout = self._config.restart_timeout if timeout is None else timeout
        return await self.await_health(workloads, timeout)
