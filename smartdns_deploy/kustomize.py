"""Library for rendering an overlay directory into a set of cluster resources.

The templating engine is either a standalone `kustomize` binary or the copy
built into `kubectl`. The output may be piped through additional tasks before
it is parsed, for example to substitute a token:
```python
from smartdns_deploy import kustomize

cmd = kustomize.build(Path("overlays/production")).substitute("PLACEHOLDER", digest)
for doc in await cmd.objects():
    print(f"Rendered {doc['kind']} {doc['metadata']['name']}")
```
"""

import logging
from pathlib import Path
import shutil
from typing import Any

import yaml

from .command import Command, run_piped, Task, format_path
from .exceptions import KustomizeException

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "build",
    "detect_engine",
    "Kustomize",
]

KUSTOMIZE_BIN = "kustomize"
KUBECTL_BIN = "kubectl"


def detect_engine() -> list[str]:
    """Return the command prefix used to build a kustomization directory."""
    if shutil.which(KUSTOMIZE_BIN):
        _LOGGER.info("kustomize found (standalone)")
        return [KUSTOMIZE_BIN, "build"]
    _LOGGER.info("Using built-in kubectl kustomize")
    return [KUBECTL_BIN, "kustomize"]


class Kustomize:
    """Library for issuing a kustomize command."""

    def __init__(self, cmds: list[Task]) -> None:
        """Initialize Kustomize, used internally for copying object."""
        self._cmds = cmds

    def substitute(self, token: str, value: str) -> "Kustomize":
        """Replace every occurrence of the token in the output."""
        return Kustomize(self._cmds + [Substitute(token, value)])

    async def run(self) -> str:
        """Run the kustomize command and return the output as a string."""
        return await run_piped(self._cmds)

    async def objects(self) -> list[dict[str, Any]]:
        """Run the kustomize command and return the result cluster objects as a list."""
        return parse_documents(await self.run())


class Substitute(Task):
    """A task that replaces a token in the output of the previous command."""

    def __init__(self, token: str, value: str) -> None:
        """Initialize Substitute."""
        self._token = token.encode("utf-8")
        self._value = value.encode("utf-8")

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the task."""
        if stdin is None:
            raise KustomizeException("Substitute requires the output of a build")
        return stdin.replace(self._token, self._value)

    def __str__(self) -> str:
        """Render as a debug string."""
        return f"substitute {self._token.decode()}"


def parse_documents(content: str) -> list[dict[str, Any]]:
    """Parse a multi-document YAML stream, skipping empty documents."""
    try:
        docs = [doc for doc in yaml.safe_load_all(content) if doc is not None]
    except yaml.YAMLError as err:
        raise KustomizeException(f"Unable to parse command output: {err}") from err
    for doc in docs:
        if not isinstance(doc, dict):
            raise KustomizeException(f"Expected a resource mapping but got: {doc}")
    return docs


def build(path: Path, engine: list[str] | None = None) -> Kustomize:
    """Build cluster resources from the kustomization in the specified path."""
    args = list(engine or detect_engine())
    _LOGGER.debug("Building %s", format_path(path))
    return Kustomize([Command(args + [str(path)], exc=KustomizeException)])
