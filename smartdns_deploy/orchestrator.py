"""Orchestrator for smartdns-deploy.

The orchestrator sequences the stages of a deploy, strictly one after the
other:
  - resolve the desired state (address, domain, overlay)
  - pre-flight checks of the tooling and the cluster connection
  - provision the TLS credentials
  - render the manifests for the overlay
  - apply them and wait for every workload to roll out
  - probe the exposed endpoints

Failures before anything touches the cluster abort with no side effects.
Failures afterwards are reported and never rolled back; re-running a deploy
from the start is always safe.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import functools
import logging
import os
from pathlib import Path
import shutil

from . import credentials, kustomize, render, target
from .config import ProjectConfig
from .context import trace_context
from .exceptions import CommandException
from .kubectl import Kubectl, Platform
from .kustomize import Kustomize
from .manifest import (
    DeployReport,
    DesiredState,
    Overlay,
    ProbeResult,
    RenderedManifestSet,
    RolloutStatus,
    WorkloadStatus,
)
from .probe import DnsProbe, HttpsProbe, run_probe, select_node_address
from .rollout import RolloutController

__all__ = [
    "Orchestrator",
    "DeployOptions",
    "StatusSnapshot",
    "url_host",
]

_LOGGER = logging.getLogger(__name__)

LISTINGS = ("pods", "services", "deployments")
LOG_TAIL_ALL = 30
LOG_TAIL_SINGLE = 100
ALL_COMPONENTS = "all"


@dataclass
class DeployOptions:
    """Options for a single deploy run.

    Attributes:
        address: Explicit target address, overriding every other source.
        overlay: The manifest variant to deploy.
        interactive: Whether the operator may be prompted for the address.
        timeout: Seconds each workload has to roll out, or the configured default.
    """

    address: str | None = None
    overlay: Overlay = Overlay.BASE
    interactive: bool = False
    timeout: float | None = None
    prompt: Callable[[], str] | None = None


@dataclass
class StatusSnapshot:
    """What is currently running in the namespace."""

    listings: dict[str, str | None] = field(default_factory=dict)
    """Table output per resource kind, None if the kind could not be listed."""

    rollouts: list[RolloutStatus] = field(default_factory=list)
    node_address: str | None = None


def label_selector(component: str) -> str:
    """Return the label selector matching the pods of a component."""
    return f"app.kubernetes.io/name={component}"


def url_host(address: str) -> str:
    """Return the address as a URL host, bracketing IPv6 literals."""
    return f"[{address}]" if ":" in address else address


class Orchestrator:
    """Coordinates the pipeline stages against one namespace."""

    def __init__(
        self,
        config: ProjectConfig,
        platform: Platform | None = None,
        builder: Callable[[Path], Kustomize] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Project layout and cluster names.
            platform: Access to the cluster, kubectl when not specified.
            builder: Templating engine, detected during pre-flight when not
                specified.
            environ: Environment variables consulted for the target.
        """
        self.config = config
        self.platform = platform or Kubectl(config.namespace)
        self._builder = builder
        self._environ = os.environ if environ is None else environ
        self.controller = RolloutController(self.platform, config.rollout)

    def resolve(self, options: DeployOptions) -> DesiredState:
        """Resolve the desired state for the run."""
        sources = target.TargetSources(
            state_file=target.StateFile(self.config.state_file),
            explicit=options.address,
            environ=self._environ,
        )
        return target.resolve(
            sources,
            overlay=options.overlay,
            interactive=options.interactive,
            prompt=options.prompt,
        )

    async def preflight(self) -> None:
        """Check the tooling and cluster connection before changing anything."""
        await self.platform.check()
        if self._builder is None:
            self._builder = functools.partial(
                kustomize.build, engine=kustomize.detect_engine()
            )
        if shutil.which(credentials.OPENSSL_BIN) is None:
            _LOGGER.warning(
                "openssl not found, self-signed TLS generation will not be possible"
            )

    def managed_workloads(self, manifests: RenderedManifestSet) -> list[str]:
        """Return the workloads to wait for after applying the manifests."""
        return manifests.workload_names() or list(self.config.workloads)

    async def node_address(self, fallback: str) -> str:
        """Return the address the node ports are reachable on."""
        try:
            addresses = await self.platform.list_node_addresses()
        except CommandException as err:
            _LOGGER.debug("Unable to list node addresses: %s", err)
            return fallback
        return select_node_address(addresses, fallback)

    async def verify(self, desired: DesiredState, node: str) -> list[ProbeResult]:
        """Probe the exposed DNS and DoH ports, never raising."""
        probe_config = self.config.probe
        probes = [
            DnsProbe(
                node,
                probe_config.dns_port,
                probe_config.dns_query,
                expected=desired.target_address,
                timeout=probe_config.connect_timeout,
            ),
            HttpsProbe(
                f"https://{url_host(node)}:{probe_config.https_port}"
                f"{probe_config.health_path}",
                timeout=probe_config.connect_timeout,
            ),
        ]
        results = []
        for probe in probes:
            _LOGGER.info("Testing %s probe (%s)", probe.name, probe)
            result = await run_probe(
                probe, attempts=probe_config.attempts, backoff=probe_config.backoff
            )
            if result.failed:
                _LOGGER.warning(
                    "%s probe failed after %d attempts", probe.name, result.attempts
                )
            elif result.passed:
                _LOGGER.info("%s probe passed", probe.name)
            results.append(result)
        return results

    async def deploy(self, options: DeployOptions) -> DeployReport:
        """Converge the namespace to the desired state and report the outcome."""
        with trace_context("Resolve"):
            desired = self.resolve(options)
        with trace_context("Pre-flight"):
            await self.preflight()
        with trace_context("Credentials"):
            material = await credentials.provision(
                desired,
                self.config.credential_search_paths,
                self.platform,
                self.config,
            )
        with trace_context("Render"):
            manifests = await render.render(
                desired, self.config, builder=self._builder
            )
        with trace_context("Apply"):
            applied = await self.controller.apply(manifests)
        with trace_context("Rollout"):
            workloads = await self.controller.await_health(
                self.managed_workloads(manifests), options.timeout
            )
        with trace_context("Verify"):
            node = await self.node_address(desired.target_address)
            probes = await self.verify(desired, node)

        return DeployReport(
            desired=desired,
            credential_origin=material.origin,
            certificate_path=material.certificate_path,
            fingerprint=manifests.fingerprint,
            node_address=node,
            applied=applied,
            workloads=workloads,
            probes=probes,
        )

    async def status(self) -> StatusSnapshot:
        """Return what is currently deployed, tolerating a missing namespace."""
        snapshot = StatusSnapshot()
        for kind in LISTINGS:
            try:
                snapshot.listings[kind] = await self.platform.get(
                    kind, wide=(kind == "pods")
                )
            except CommandException as err:
                _LOGGER.debug("Unable to list %s: %s", kind, err)
                snapshot.listings[kind] = None
        for name in self.config.workloads:
            try:
                snapshot.rollouts.append(await self.platform.rollout_status(name))
            except CommandException as err:
                _LOGGER.debug("Unable to query %s: %s", name, err)
        try:
            addresses = await self.platform.list_node_addresses()
        except CommandException as err:
            _LOGGER.debug("Unable to list node addresses: %s", err)
        else:
            snapshot.node_address = select_node_address(addresses, fallback="") or None
        return snapshot

    async def destroy(self) -> bool:
        """Delete the namespace and generated files, True if a file was removed."""
        await self.platform.check()
        await self.platform.delete_namespace()
        _LOGGER.info("Namespace %s deleted", self.config.namespace)
        generated = self.config.generated_hosts_file
        if not generated.exists():
            return False
        generated.unlink()
        _LOGGER.info("Cleaned generated files")
        return True

    async def logs(
        self, component: str = ALL_COMPONENTS, tail: int | None = None
    ) -> dict[str, str | None]:
        """Return recent logs per component, None when there are none."""
        if component == ALL_COMPONENTS:
            components = list(self.config.workloads)
            tail = tail or LOG_TAIL_ALL
        else:
            components = [component]
            tail = tail or LOG_TAIL_SINGLE
        result: dict[str, str | None] = {}
        for name in components:
            try:
                result[name] = await self.platform.logs(label_selector(name), tail)
            except CommandException as err:
                _LOGGER.debug("Unable to fetch logs for %s: %s", name, err)
                result[name] = None
        return result

    async def restart(self) -> dict[str, WorkloadStatus]:
        """Restart every workload and wait for the rollouts."""
        await self.platform.check()
        return await self.controller.restart(list(self.config.workloads))
