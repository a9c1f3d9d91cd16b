"""Rendering of the resource set for a desired state.

Rendering happens in two stages:
  - The hosts table template is filled in with the target address and written
    as a generated ConfigMap next to the other base resources.
  - A fingerprint of all configuration-bearing files is computed, and the
    overlay is built by the templating engine with the fingerprint substituted
    into the workload definitions. A changed fingerprint changes the pod
    template, so the cluster rolls the workloads even when nothing else changed.

The generated ConfigMap is rewritten from scratch on every run. Comment lines
are not configuration, so the banner and timestamp they carry never affect
the fingerprint.
"""

from collections.abc import Callable, Iterable
import datetime
import hashlib
import logging
from pathlib import Path
import re

import aiofiles
from aiofiles.ospath import isfile
import yaml

from . import kustomize
from .config import ProjectConfig
from .exceptions import KustomizeException, RenderException
from .kustomize import Kustomize
from .manifest import (
    DesiredState,
    Overlay,
    RenderedManifestSet,
    FINGERPRINT_PLACEHOLDER,
)

__all__ = [
    "render",
    "render_hosts",
    "hosts_configmap",
    "config_fingerprint",
    "overlay_path",
]

_LOGGER = logging.getLogger(__name__)

KUSTOMIZATION_FILE = "kustomization.yaml"
ADDRESS_TOKEN = "__VPS_IP__"
DATE_TOKEN = "__DATE__"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S %Z"

HOSTS_CONFIGMAP_TEMPLATE = """\
# AUTO-GENERATED - Do not edit manually.
# Generated by: smartdns-deploy
# VPS IP: {address}
# Date: {date}
apiVersion: v1
kind: ConfigMap
metadata:
  name: {name}
  namespace: {namespace}
  labels:
    app.kubernetes.io/name: coredns-smartdns
    app.kubernetes.io/component: dns-hosts
    app.kubernetes.io/part-of: doh-smart-dns
data:
  {name}: |
{content}
"""


def overlay_path(config: ProjectConfig, overlay: Overlay) -> Path:
    """Return the directory holding the kustomization for the overlay."""
    if overlay == Overlay.BASE:
        return config.base_dir
    return config.overlays_dir / str(overlay)


def render_hosts(template: str, address: str, date: str) -> str:
    """Fill in the hosts table template."""
    return template.replace(ADDRESS_TOKEN, address).replace(DATE_TOKEN, date)


def hosts_configmap(
    hosts: str, address: str, date: str, name: str, namespace: str
) -> str:
    """Wrap the hosts table in a ConfigMap resource."""
    content = "\n".join(
        f"    {line}" if line.strip() else "" for line in hosts.rstrip("\n").split("\n")
    )
    return HOSTS_CONFIGMAP_TEMPLATE.format(
        address=address,
        date=date,
        name=name,
        namespace=namespace,
        content=content,
    )


def config_fingerprint(contents: Iterable[bytes]) -> str:
    """Return a digest of the configuration content, ignoring comment lines."""
    digest = hashlib.sha256()
    for content in contents:
        for line in content.splitlines(keepends=True):
            if line.lstrip().startswith(b"#"):
                continue
            digest.update(line)
    return digest.hexdigest()


def ensure_kustomization_resource(kustomization: Path, resource: str) -> bool:
    """Add the resource to the kustomization if missing, returning True if added."""
    text = kustomization.read_text()
    try:
        doc = yaml.safe_load(text) or {}
    except yaml.YAMLError as err:
        raise RenderException(f"Unable to parse {kustomization}: {err}") from err
    resources = doc.get("resources")
    if resources and resource in resources:
        return False

    lines = text.splitlines(keepends=True)
    if resources is None:
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.append(f"resources:\n  - {resource}\n")
    else:
        for i, line in enumerate(lines):
            if line.rstrip() != "resources:":
                continue
            indent = "  "
            if i + 1 < len(lines) and (match := re.match(r"^(\s*)- ", lines[i + 1])):
                indent = match.group(1)
            lines.insert(i + 1, f"{indent}- {resource}\n")
            break
        else:
            raise RenderException(
                f"Unable to add {resource} to {kustomization}",
                remediation=f"Add '- {resource}' to the resources list manually",
            )
    kustomization.write_text("".join(lines))
    _LOGGER.info("Added %s to %s", resource, kustomization)
    return True


async def _read(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as fd:
        return await fd.read()


async def render(
    desired: DesiredState,
    config: ProjectConfig,
    builder: Callable[[Path], Kustomize] | None = None,
    now: datetime.datetime | None = None,
) -> RenderedManifestSet:
    """Render the full resource set for the desired state.

    Either the complete set is returned or an exception is raised; nothing is
    sent to the cluster here.
    """
    overlay_dir = overlay_path(config, desired.overlay)
    for path in (config.base_dir, overlay_dir):
        if await isfile(path / KUSTOMIZATION_FILE):
            continue
        raise RenderException(
            f"Kustomization not found: {path / KUSTOMIZATION_FILE}",
            remediation="Run from the project directory or pass --project-dir",
        )
    if not await isfile(config.hosts_template):
        raise RenderException(
            f"Template not found: {config.hosts_template}",
            remediation="Restore the hosts template from the project repository",
        )

    date = (now or datetime.datetime.now().astimezone()).strftime(DATE_FORMAT)
    template = (await _read(config.hosts_template)).decode("utf-8")
    generated = hosts_configmap(
        render_hosts(template, desired.target_address, date),
        address=desired.target_address,
        date=date,
        name=config.hosts_configmap_name,
        namespace=config.namespace,
    )
    async with aiofiles.open(config.generated_hosts_file, "w") as fd:
        await fd.write(generated)
    _LOGGER.info(
        "Generated %s ConfigMap (VPS_IP=%s)",
        config.hosts_configmap_name,
        desired.target_address,
    )
    ensure_kustomization_resource(
        config.base_dir / KUSTOMIZATION_FILE, config.generated_hosts_file.name
    )

    contents: list[bytes] = []
    for path in config.static_config_files:
        if not await isfile(path):
            _LOGGER.warning("Configuration file %s not found, skipping", path)
            continue
        contents.append(await _read(path))
    contents.append(generated.encode("utf-8"))
    fingerprint = config_fingerprint(contents)

    cmd = (builder or kustomize.build)(overlay_dir).substitute(
        FINGERPRINT_PLACEHOLDER, fingerprint
    )
    try:
        content = await cmd.run()
        documents = kustomize.parse_documents(content)
    except KustomizeException as err:
        raise KustomizeException(
            str(err),
            remediation=(
                f"Reproduce the build with: kubectl kustomize {overlay_dir}\n"
                "then fix the kustomization and re-run smartdns-deploy"
            ),
        ) from err
    if not documents:
        raise RenderException(
            f"Rendering {overlay_dir} produced no resources",
            remediation=f"Add the resources to {overlay_dir / KUSTOMIZATION_FILE}",
        )
    if fingerprint not in content:
        _LOGGER.warning(
            "No %s token found in %s; workloads will not restart on config changes",
            FINGERPRINT_PLACEHOLDER,
            overlay_dir,
        )
    return RenderedManifestSet(
        overlay=desired.overlay,
        content=content,
        documents=documents,
        fingerprint=fingerprint,
    )
