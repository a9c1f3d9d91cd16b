"""Resolution of the target address and domain for a deployment.

The target address is taken from the first source that has one:
  - an explicit command line argument
  - the `VPS_IP` environment variable
  - the persisted state file (`.env` in the project directory)
  - an interactive prompt, when allowed

The resolved address is written back to the state file for the next run, but
only when the file does not already hold one.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import ipaddress
import logging
from pathlib import Path
import re

from dotenv import dotenv_values

from .exceptions import InvalidTargetError
from .manifest import DesiredState, Overlay

__all__ = [
    "StateFile",
    "TargetSources",
    "resolve",
    "is_valid_address",
    "looks_like_address",
]

_LOGGER = logging.getLogger(__name__)

ADDRESS_KEY = "VPS_IP"
DOMAIN_KEY = "DOMAIN"

# Loose shape check used to tell an address argument apart from an overlay name
_ADDRESS_SHAPE = re.compile(r"^\d+\.\d+\.\d+\.\d+$|^[0-9a-fA-F:]*:[0-9a-fA-F:]*$")


class StateFile:
    """A flat KEY=value file that is only ever appended to."""

    def __init__(self, path: Path) -> None:
        """Initialize StateFile."""
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def values(self) -> dict[str, str]:
        """Return the values in the file, or nothing if it does not exist."""
        if not self._path.is_file():
            return {}
        return {
            key: value.strip()
            for key, value in dotenv_values(self._path).items()
            if value is not None
        }

    def get(self, key: str) -> str | None:
        """Return the non-empty value of the key, if present."""
        return self.values().get(key) or None

    def append(self, key: str, value: str) -> bool:
        """Add the key unless the file already has it, returning True if written."""
        if key in self.values():
            return False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        prefix = ""
        if self._path.is_file():
            existing = self._path.read_text()
            if existing and not existing.endswith("\n"):
                prefix = "\n"
        with self._path.open("a") as fd:
            fd.write(f"{prefix}{key}={value}\n")
        return True


@dataclass
class TargetSources:
    """The layered inputs the target is resolved from, highest priority first."""

    state_file: StateFile
    explicit: str | None = None
    environ: Mapping[str, str] = field(default_factory=dict)


def looks_like_address(value: str) -> bool:
    """Return True if the value has the shape of an IPv4 or IPv6 literal."""
    return bool(_ADDRESS_SHAPE.match(value))


def _is_ipv4(value: str) -> bool:
    octets = value.split(".")
    if len(octets) != 4:
        return False
    return all(
        octet.isascii() and octet.isdigit() and len(octet) <= 3 and int(octet) <= 255
        for octet in octets
    )


def _is_ipv6(value: str) -> bool:
    # No zone index (fe80::1%eth0)
    if ":" not in value or "%" in value:
        return False
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


def is_valid_address(value: str) -> bool:
    """Return True for an IPv4 dotted quad or an IPv6 literal.

    Leading zeros are accepted in IPv4 octets. The text is never normalized.
    """
    return _is_ipv4(value) or _is_ipv6(value)


def _prompt_stdin() -> str:
    print()
    print("Enter your VPS / server public IP address:")
    value = input("> ")
    print()
    return value


def _candidate(
    sources: TargetSources, interactive: bool, prompt: Callable[[], str] | None
) -> str | None:
    if sources.explicit:
        _LOGGER.debug("Using target address from argument")
        return sources.explicit
    if value := sources.environ.get(ADDRESS_KEY):
        _LOGGER.debug("Using target address from %s environment variable", ADDRESS_KEY)
        return value
    if value := sources.state_file.get(ADDRESS_KEY):
        _LOGGER.debug("Using target address from %s", sources.state_file.path)
        return value
    if interactive:
        return (prompt or _prompt_stdin)()
    return None


def resolve(
    sources: TargetSources,
    overlay: Overlay = Overlay.BASE,
    interactive: bool = False,
    prompt: Callable[[], str] | None = None,
) -> DesiredState:
    """Resolve the desired state and persist the address for future runs."""
    candidate = (_candidate(sources, interactive, prompt) or "").strip()
    if not candidate:
        raise InvalidTargetError(
            "Target address is required",
            remediation=(
                "Pass it as an argument (smartdns-deploy deploy 1.2.3.4), set "
                f"{ADDRESS_KEY}, or add {ADDRESS_KEY}=1.2.3.4 to "
                f"{sources.state_file.path}"
            ),
        )
    if not is_valid_address(candidate):
        raise InvalidTargetError(
            f"Invalid IP address: {candidate}",
            remediation="Use an IPv4 (203.0.113.7) or IPv6 (2001:db8::7) literal",
        )

    domain = sources.environ.get(DOMAIN_KEY) or sources.state_file.get(DOMAIN_KEY)
    desired = DesiredState(target_address=candidate, overlay=overlay, domain=domain)

    if sources.state_file.append(ADDRESS_KEY, candidate):
        _LOGGER.info("Saved %s to %s", ADDRESS_KEY, sources.state_file.path)
    elif (persisted := sources.state_file.get(ADDRESS_KEY)) != candidate:
        _LOGGER.info(
            "Keeping %s=%s in %s (this run uses %s)",
            ADDRESS_KEY,
            persisted,
            sources.state_file.path,
            candidate,
        )
    return desired
