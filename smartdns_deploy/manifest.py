"""Representation of the desired state of a deployment and what happened to it.

The objects here flow through the pipeline: a `DesiredState` is resolved once
per run, turned into `CredentialMaterial` and a `RenderedManifestSet`, and the
rollout produces `WorkloadStatus` values that are collected in a
`DeployReport`. Report objects may be serialized for machine readable output.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

__all__ = [
    "Overlay",
    "DesiredState",
    "CredentialOrigin",
    "DiscoveredCredential",
    "GeneratedCredential",
    "CredentialMaterial",
    "RenderedManifestSet",
    "WorkloadPhase",
    "WorkloadStatus",
    "RolloutStatus",
    "NodeAddress",
    "AppliedResource",
    "ApplyReport",
    "ProbeResult",
    "Outcome",
    "DeployReport",
]

_LOGGER = logging.getLogger(__name__)

DEPLOYMENT_KIND = "Deployment"

# Token in workload definitions replaced by the config fingerprint
FINGERPRINT_PLACEHOLDER = "PLACEHOLDER"


class Overlay(StrEnum):
    """A named variant of the manifest set."""

    BASE = "base"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, name: str | None) -> "Overlay":
        """Return the overlay for the name, falling back to base when unknown."""
        if not name:
            return cls.BASE
        try:
            return cls(name)
        except ValueError:
            _LOGGER.warning("Unknown overlay '%s', using '%s'", name, cls.BASE)
            return cls.BASE


@dataclass(frozen=True)
class DesiredState(DataClassDictMixin):
    """The parameters a run converges the cluster towards."""

    target_address: str
    """Public IP address of the server, exactly as the operator supplied it."""

    overlay: Overlay = Overlay.BASE
    """The manifest variant to deploy."""

    domain: str | None = None
    """Optional domain name the server is reachable by."""

    class Config(BaseConfig):
        omit_none = True


class CredentialOrigin(StrEnum):
    """Where a TLS certificate and key came from."""

    DISCOVERED = "Discovered"
    GENERATED = "Generated"


@dataclass(frozen=True)
class DiscoveredCredential:
    """A certificate and key found on disk, owned by someone else."""

    certificate_path: Path
    key_path: Path

    origin: ClassVar[CredentialOrigin] = CredentialOrigin.DISCOVERED


@dataclass(frozen=True)
class GeneratedCredential:
    """A self-signed certificate and key created by this run."""

    certificate_path: Path
    key_path: Path

    origin: ClassVar[CredentialOrigin] = CredentialOrigin.GENERATED


CredentialMaterial = DiscoveredCredential | GeneratedCredential


@dataclass
class RenderedManifestSet:
    """The complete resource set for an overlay, ready to apply."""

    overlay: Overlay
    """The overlay the set was built from."""

    content: str
    """The multi-document YAML stream passed to the cluster."""

    documents: list[dict[str, Any]]
    """The parsed documents of `content`, in order."""

    fingerprint: str
    """Digest of the configuration content embedded in workload definitions."""

    @property
    def short_fingerprint(self) -> str:
        return self.fingerprint[:12]

    def workload_names(self) -> list[str]:
        """Return the names of the Deployments in the set."""
        return [
            doc["metadata"]["name"]
            for doc in self.documents
            if doc.get("kind") == DEPLOYMENT_KIND and doc.get("metadata")
        ]


class WorkloadPhase(StrEnum):
    """Rollout phase of a managed workload."""

    PENDING = "Pending"
    ROLLOUT_IN_PROGRESS = "RolloutInProgress"
    READY = "Ready"
    TIMED_OUT = "TimedOut"

    @property
    def terminal(self) -> bool:
        return self in (WorkloadPhase.READY, WorkloadPhase.TIMED_OUT)


@dataclass
class WorkloadStatus(DataClassDictMixin):
    """The last known rollout state of one workload."""

    name: str
    phase: WorkloadPhase = WorkloadPhase.PENDING
    last_observed_replicas: int = 0
    """Number of ready replicas seen on the most recent poll."""


@dataclass(frozen=True)
class RolloutStatus:
    """Rollout progress of a workload as reported by the cluster."""

    name: str
    desired_replicas: int
    updated_replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    ready: bool = False


@dataclass(frozen=True)
class NodeAddress:
    """An address of a cluster node, e.g. type `ExternalIP` or `InternalIP`."""

    type: str
    address: str


@dataclass(frozen=True)
class AppliedResource(DataClassDictMixin):
    """A resource touched by an apply, e.g. `deployment.apps/doh-nginx`."""

    resource: str
    action: str
    """What the cluster did: `created`, `configured`, `unchanged`, ..."""

    @property
    def changed(self) -> bool:
        return self.action != "unchanged"

    @classmethod
    def parse_line(cls, line: str) -> "AppliedResource | None":
        """Parse a line of `kubectl apply` output."""
        parts = line.strip().split()
        if len(parts) < 2 or "/" not in parts[0]:
            return None
        return cls(resource=parts[0], action=" ".join(parts[1:]))


@dataclass
class ApplyReport(DataClassDictMixin):
    """Result of applying a rendered manifest set."""

    resources: list[AppliedResource] = field(default_factory=list)

    @property
    def changed(self) -> list[AppliedResource]:
        return [resource for resource in self.resources if resource.changed]


@dataclass
class ProbeResult(DataClassDictMixin):
    """Result of a retried verification probe."""

    name: str
    passed: bool | None
    """True or False when the probe ran, None when it was skipped."""

    attempts: int = 0
    detail: str | None = None

    @property
    def failed(self) -> bool:
        return self.passed is False


class Outcome(StrEnum):
    """Terminal outcome of a deploy."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


@dataclass
class DeployReport(DataClassDictMixin):
    """Everything a deploy did, aggregated for the operator."""

    desired: DesiredState
    credential_origin: CredentialOrigin
    certificate_path: Path
    fingerprint: str
    node_address: str
    applied: ApplyReport
    workloads: dict[str, WorkloadStatus]
    probes: list[ProbeResult] = field(default_factory=list)

    @property
    def outcome(self) -> Outcome:
        """Healthy only when every workload is ready and no probe failed."""
        if any(
            status.phase != WorkloadPhase.READY for status in self.workloads.values()
        ):
            return Outcome.DEGRADED
        if any(probe.failed for probe in self.probes):
            return Outcome.DEGRADED
        return Outcome.HEALTHY

    def compact_dict(self) -> dict[str, Any]:
        """Return the serialized report including the derived outcome."""
        data = self.to_dict()
        data["outcome"] = str(self.outcome)
        return data

    class Config(BaseConfig):
        omit_none = True
