"""Access to the cluster through the kubectl binary.

The `Platform` interface is everything the pipeline needs from the cluster.
`Kubectl` implements it by running kubectl commands scoped to one namespace;
tests substitute their own implementation.
"""

from abc import ABC, abstractmethod
import json
import logging
from pathlib import Path
import shutil
from typing import Any

from .command import Command, Input, run, run_piped, TIMEOUT
from .exceptions import (
    ApplyRejectedError,
    ClusterUnreachableError,
    KubectlException,
    ToolingUnavailableError,
)
from .manifest import AppliedResource, NodeAddress, RolloutStatus

__all__ = [
    "Platform",
    "Kubectl",
]

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"
DELETE_TIMEOUT = 300.0


class Platform(ABC):
    """Operations on the namespace a deployment lives in."""

    @abstractmethod
    async def check(self) -> str:
        """Verify the cluster is reachable, returning the context in use."""

    @abstractmethod
    async def apply(self, content: str) -> list[AppliedResource]:
        """Apply a multi-document YAML stream."""

    @abstractmethod
    async def apply_file(self, path: Path) -> list[AppliedResource]:
        """Apply the resources in a file."""

    @abstractmethod
    async def rollout_status(self, name: str) -> RolloutStatus:
        """Return the rollout progress of a Deployment."""

    @abstractmethod
    async def create_or_update_secret(
        self, name: str, certificate_path: Path, key_path: Path
    ) -> AppliedResource:
        """Create or update a TLS secret; unchanged material is a no-op."""

    @abstractmethod
    async def list_node_addresses(self) -> list[NodeAddress]:
        """Return the addresses of the cluster nodes."""

    @abstractmethod
    async def delete_namespace(self) -> None:
        """Delete the namespace and everything in it."""

    @abstractmethod
    async def rollout_restart(self, name: str) -> None:
        """Trigger a rolling restart of a Deployment."""

    @abstractmethod
    async def logs(self, selector: str, tail: int) -> str:
        """Return recent log lines of the pods matching the label selector."""

    @abstractmethod
    async def get(self, kind: str, wide: bool = False) -> str:
        """Return the table listing of the resources of a kind."""


def is_available() -> bool:
    """Return True if the kubectl binary is on the PATH."""
    return shutil.which(KUBECTL_BIN) is not None


def parse_apply_output(out: str) -> list[AppliedResource]:
    """Parse the per-resource lines printed by `kubectl apply`."""
    return [
        resource
        for line in out.splitlines()
        if (resource := AppliedResource.parse_line(line)) is not None
    ]


def parse_rollout_status(name: str, doc: dict[str, Any]) -> RolloutStatus:
    """Compute the rollout progress of a Deployment object.

    A rollout is complete when the controller observed the latest generation,
    every desired replica runs the new template and is available, and no old
    replicas remain.
    """
    metadata = doc.get("metadata", {})
    spec = doc.get("spec", {})
    status = doc.get("status", {})
    desired = spec.get("replicas", 1)
    updated = status.get("updatedReplicas", 0)
    available = status.get("availableReplicas", 0)
    ready = (
        status.get("observedGeneration", 0) >= metadata.get("generation", 0)
        and updated >= desired
        and status.get("replicas", 0) <= updated
        and available >= updated
    )
    return RolloutStatus(
        name=name,
        desired_replicas=desired,
        updated_replicas=updated,
        ready_replicas=status.get("readyReplicas", 0),
        available_replicas=available,
        ready=ready,
    )


class Kubectl(Platform):
    """Platform implementation that runs kubectl against one namespace."""

    def __init__(
        self, namespace: str, context: str | None = None, timeout: float = TIMEOUT
    ) -> None:
        """Initialize Kubectl."""
        self._namespace = namespace
        self._context = context
        self._timeout = timeout

    @property
    def namespace(self) -> str:
        return self._namespace

    def _command(
        self,
        args: list[str],
        namespaced: bool = True,
        exc: type[KubectlException] = KubectlException,
    ) -> Command:
        cmd = [KUBECTL_BIN]
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(args)
        if namespaced:
            cmd.extend(["--namespace", self._namespace])
        return Command(cmd, exc=exc)

    async def _run(self, args: list[str], namespaced: bool = True) -> str:
        return await run(self._command(args, namespaced), timeout=self._timeout)

    async def client_version(self) -> str:
        """Return the version of the kubectl client."""
        out = await self._run(["version", "--client", "-o", "json"], namespaced=False)
        try:
            return json.loads(out)["clientVersion"]["gitVersion"]
        except (ValueError, KeyError) as err:
            raise KubectlException(f"Unexpected kubectl version output: {out}") from err

    async def cluster_info(self) -> str:
        """Return the cluster endpoints; fails when the cluster is unreachable."""
        return await self._run(["cluster-info"], namespaced=False)

    async def current_context(self) -> str:
        """Return the name of the kubeconfig context in use."""
        return (
            await self._run(["config", "current-context"], namespaced=False)
        ).strip()

    async def check(self) -> str:
        """Verify kubectl is installed and the cluster answers."""
        if not is_available():
            raise ToolingUnavailableError(
                "kubectl not found",
                remediation="Install kubectl: https://kubernetes.io/docs/tasks/tools/",
            )
        _LOGGER.info("kubectl %s", await self.client_version())
        try:
            await self.cluster_info()
        except KubectlException as err:
            raise ClusterUnreachableError(
                "Cannot connect to Kubernetes cluster",
                remediation=(
                    "Make sure your kubeconfig is configured:\n"
                    "  export KUBECONFIG=/path/to/kubeconfig"
                ),
            ) from err
        context = await self.current_context()
        _LOGGER.info("Connected to cluster: %s", context or "default")
        return context

    async def apply(self, content: str) -> list[AppliedResource]:
        """Apply a multi-document YAML stream."""
        cmd = self._command(["apply", "-f", "-"], exc=ApplyRejectedError)
        try:
            out = await run_piped([Input(content.encode("utf-8")), cmd], self._timeout)
        except ApplyRejectedError as err:
            raise ApplyRejectedError(
                str(err),
                remediation=(
                    "Resources applied before the failure stay applied. Check the "
                    "rendered manifests with:\n"
                    "  kubectl kustomize <overlay> | kubectl apply --dry-run=server "
                    "-f -\n"
                    "then fix them and re-run smartdns-deploy"
                ),
            ) from err
        return parse_apply_output(out)

    async def apply_file(self, path: Path) -> list[AppliedResource]:
        """Apply the resources in a file."""
        cmd = self._command(["apply", "-f", str(path)], exc=ApplyRejectedError)
        try:
            out = await run(cmd, self._timeout)
        except ApplyRejectedError as err:
            raise ApplyRejectedError(
                str(err),
                remediation=(
                    f"Validate the file with: kubectl apply --dry-run=server -f {path}"
                ),
            ) from err
        return parse_apply_output(out)

    async def rollout_status(self, name: str) -> RolloutStatus:
        """Return the rollout progress of a Deployment."""
        out = await self._run(["get", "deployment", name, "-o", "json"])
        try:
            doc = json.loads(out)
        except ValueError as err:
            raise KubectlException(f"Unexpected output for deployment {name}") from err
        return parse_rollout_status(name, doc)

    async def create_or_update_secret(
        self, name: str, certificate_path: Path, key_path: Path
    ) -> AppliedResource:
        """Render the secret client side and apply it."""
        create = self._command(
            [
                "create",
                "secret",
                "tls",
                name,
                f"--cert={certificate_path}",
                f"--key={key_path}",
                "--dry-run=client",
                "-o",
                "yaml",
            ]
        )
        apply = self._command(["apply", "-f", "-"])
        try:
            out = await run_piped([create, apply], self._timeout)
        except KubectlException as err:
            raise KubectlException(
                str(err),
                remediation=(
                    "Check the certificate and key are a matching PEM pair:\n"
                    f"  openssl x509 -noout -pubkey -in {certificate_path}\n"
                    f"  openssl pkey -pubout -in {key_path}\n"
                    f"and that namespace {self._namespace} exists"
                ),
            ) from err
        if not (resources := parse_apply_output(out)):
            raise KubectlException(f"Unexpected output applying secret {name}: {out}")
        return resources[0]

    async def list_node_addresses(self) -> list[NodeAddress]:
        """Return the addresses of the cluster nodes, in node order."""
        out = await self._run(["get", "nodes", "-o", "json"], namespaced=False)
        try:
            items = json.loads(out).get("items", [])
        except ValueError as err:
            raise KubectlException("Unexpected output listing nodes") from err
        return [
            NodeAddress(type=address["type"], address=address["address"])
            for item in items
            for address in item.get("status", {}).get("addresses", [])
        ]

    async def delete_namespace(self) -> None:
        """Delete the namespace, ignoring a namespace that does not exist."""
        cmd = self._command(
            ["delete", "namespace", self._namespace, "--ignore-not-found"],
            namespaced=False,
        )
        await run(cmd, timeout=max(self._timeout, DELETE_TIMEOUT))

    async def rollout_restart(self, name: str) -> None:
        """Trigger a rolling restart of a Deployment."""
        await self._run(["rollout", "restart", f"deployment/{name}"])

    async def logs(self, selector: str, tail: int) -> str:
        """Return recent log lines of the pods matching the label selector."""
        return await self._run(
            ["logs", "-l", selector, f"--tail={tail}", "--prefix"]
        )

    async def get(self, kind: str, wide: bool = False) -> str:
        """Return the table listing of the resources of a kind."""
        args = ["get", kind]
        if wide:
            args.extend(["-o", "wide"])
        return await self._run(args)
