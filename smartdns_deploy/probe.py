"""Post-deploy verification probes against the externally exposed ports.

Probes are best effort: a failing probe degrades the outcome of a deploy but
never raises and never undoes anything that was applied.
"""

from abc import ABC, abstractmethod
import asyncio
import ipaddress
import logging
import shutil

import httpx

from .command import Command, run
from .exceptions import CommandException
from .manifest import NodeAddress, ProbeResult

__all__ = [
    "Probe",
    "DnsProbe",
    "HttpsProbe",
    "run_probe",
    "parse_address",
    "select_node_address",
]

_LOGGER = logging.getLogger(__name__)

DIG_BIN = "dig"


class Probe(ABC):
    """A single check of an exposed endpoint."""

    name: str

    def available(self) -> bool:
        """Return False if the probe can't run in this environment."""
        return True

    @abstractmethod
    async def check(self) -> bool:
        """Run the check once, returning True if it passed."""


def parse_address(
    value: str,
) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Parse an IP literal, accepting zero padded IPv4 octets."""
    if ":" not in value:
        octets = value.split(".")
        if len(octets) == 4 and all(octet.isdigit() for octet in octets):
            value = ".".join(str(int(octet)) for octet in octets)
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


class DnsProbe(Probe):
    """Query the DNS port and expect the answer to contain the target address.

    The record type follows the address family of the target, and addresses
    are compared by value so `010.0.0.5` matches an answer of `10.0.0.5`.
    """

    name = "dns"

    def __init__(
        self, server: str, port: int, query: str, expected: str, timeout: float = 3.0
    ) -> None:
        """Initialize DnsProbe."""
        self._server = server
        self._port = port
        self._query = query
        self._expected = expected
        self._timeout = timeout

    def available(self) -> bool:
        return shutil.which(DIG_BIN) is not None

    async def check(self) -> bool:
        """Run the check once, returning True if it passed."""
        cmd = Command(
            [
                DIG_BIN,
                f"@{self._server}",
                "-p",
                str(self._port),
                self._query,
                self.record_type,
                "+short",
                f"+time={int(self._timeout)}",
                "+tries=1",
            ]
        )
        try:
            out = await run(cmd, timeout=self._timeout + 2)
        except CommandException as err:
            _LOGGER.debug("DNS probe failed: %s", err)
            return False
        return self.matches(out)

    @property
    def record_type(self) -> str:
        return "AAAA" if ":" in self._expected else "A"

    def matches(self, out: str) -> bool:
        """Return True if the dig output contains the expected address."""
        expected = parse_address(self._expected)
        return expected is not None and any(
            parse_address(token) == expected for token in out.split()
        )

    def __str__(self) -> str:
        return f"{self._query} @ {self._server}:{self._port}"


class HttpsProbe(Probe):
    """Fetch the health endpoint, accepting self-signed certificates."""

    name = "https"

    def __init__(self, url: str, timeout: float = 3.0) -> None:
        """Initialize HttpsProbe."""
        self._url = url
        self._timeout = timeout

    async def check(self) -> bool:
        """Run the check once, returning True if it passed."""
        try:
            async with httpx.AsyncClient(
                verify=False, timeout=self._timeout
            ) as client:
                response = await client.get(self._url)
                response.raise_for_status()
        except httpx.HTTPError as err:
            _LOGGER.debug("HTTPS probe failed: %s", err)
            return False
        return True

    def __str__(self) -> str:
        return self._url


async def run_probe(
    probe: Probe, attempts: int = 3, backoff: float = 3.0
) -> ProbeResult:
    """Run the probe until it passes, sleeping between attempts."""
    if not probe.available():
        _LOGGER.info("Skipping %s probe, required tool not installed", probe.name)
        return ProbeResult(name=probe.name, passed=None, detail="skipped")
    for attempt in range(1, attempts + 1):
        if await probe.check():
            return ProbeResult(
                name=probe.name, passed=True, attempts=attempt, detail=str(probe)
            )
        if attempt < attempts:
            await asyncio.sleep(backoff)
    return ProbeResult(
        name=probe.name, passed=False, attempts=attempts, detail=str(probe)
    )


def select_node_address(addresses: list[NodeAddress], fallback: str) -> str:
    """Return the address probes should use to reach the node ports."""
    for address_type in ("ExternalIP", "InternalIP"):
        for address in addresses:
            if address.type == address_type and address.address:
                return address.address
    return fallback
