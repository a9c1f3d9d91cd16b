"""Tests for the rollout controller."""

from collections.abc import Callable
import pathlib

from smartdns_deploy import render
from smartdns_deploy.config import ProjectConfig, RolloutConfig
from smartdns_deploy.exceptions import KubectlException
from smartdns_deploy.kustomize import Kustomize
from smartdns_deploy.manifest import DesiredState, RolloutStatus, WorkloadPhase
from smartdns_deploy.rollout import RolloutController

from . import FakePlatform

FAST = RolloutConfig(timeout=0.5, restart_timeout=0.5, poll_interval=0.01)


async def test_apply(
    config: ProjectConfig,
    platform: FakePlatform,
    builder: Callable[[pathlib.Path], Kustomize],
) -> None:
    """Test applying the same rendered set twice."""
    manifests = await render.render(
        DesiredState(target_address="10.0.0.5"), config, builder=builder
    )
    controller = RolloutController(platform, FAST)

    first = await controller.apply(manifests)
    second = await controller.apply(manifests)

    assert platform.applied == [manifests.content, manifests.content]
    assert len(first.resources) == len(manifests.documents)
    assert first.changed == first.resources
    assert second.changed == []


async def test_await_health() -> None:
    """Test every workload becomes ready after a few polls."""
    platform = FakePlatform(ready_after=3)
    controller = RolloutController(platform, FAST)

    statuses = await controller.await_health(["coredns-smartdns", "doh-nginx"])

    assert {name: status.phase for name, status in statuses.items()} == {
        "coredns-smartdns": WorkloadPhase.READY,
        "doh-nginx": WorkloadPhase.READY,
    }
    assert statuses["doh-nginx"].last_observed_replicas == 1
    assert platform.polls == {"coredns-smartdns": 3, "doh-nginx": 3}


async def test_timeout_isolated() -> None:
    """Test a workload that never becomes ready does not affect the others."""
    platform = FakePlatform(never_ready=("doh-backend",))
    controller = RolloutController(platform, FAST)

    statuses = await controller.await_health(
        ["coredns-smartdns", "doh-backend", "doh-nginx"], timeout=0.2
    )

    assert statuses["doh-backend"].phase == WorkloadPhase.TIMED_OUT
    assert statuses["doh-backend"].last_observed_replicas == 0
    assert statuses["coredns-smartdns"].phase == WorkloadPhase.READY
    assert statuses["doh-nginx"].phase == WorkloadPhase.READY
    assert platform.polls["doh-backend"] > 1
    assert platform.polls["doh-nginx"] == 1


class FlakyPlatform(FakePlatform):
    """A cluster where the workload does not exist on the first query."""

    async def rollout_status(self, name: str) -> RolloutStatus:
        if not self.polls[name]:
            self.polls[name] += 1
            raise KubectlException(f'deployments.apps "{name}" not found')
        return await super().rollout_status(name)


async def test_query_errors_keep_polling() -> None:
    """Test a failed status query is retried until the deadline."""
    platform = FlakyPlatform(ready_after=2)
    controller = RolloutController(platform, FAST)

    statuses = await controller.await_health(["doh-nginx"])

    assert statuses["doh-nginx"].phase == WorkloadPhase.READY


async def test_restart() -> None:
    """Test restarting workloads, tolerating one that can't be restarted."""
    platform = FakePlatform(never_ready=("doh-backend",))
    controller = RolloutController(platform, FAST)

    statuses = await controller.restart(["coredns-smartdns", "doh-backend"])

    assert platform.restarted == ["coredns-smartdns"]
    assert statuses["coredns-smartdns"].phase == WorkloadPhase.READY
    assert statuses["doh-backend"].phase == WorkloadPhase.TIMED_OUT
