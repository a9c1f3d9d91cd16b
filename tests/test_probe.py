"""Tests for the verification probes."""

import httpx
import pytest

from smartdns_deploy import probe
from smartdns_deploy.manifest import NodeAddress
from smartdns_deploy.probe import HttpsProbe, Probe, run_probe, select_node_address


class CountingProbe(Probe):
    """A probe that passes after a number of attempts."""

    name = "counting"

    def __init__(self, passes_on: int | None, available: bool = True) -> None:
        self.passes_on = passes_on
        self.is_available = available
        self.calls = 0

    def available(self) -> bool:
        return self.is_available

    async def check(self) -> bool:
        self.calls += 1
        return self.passes_on is not None and self.calls >= self.passes_on


async def test_probe_retried() -> None:
    """Test a probe is retried until it passes."""
    counting = CountingProbe(passes_on=2)
    result = await run_probe(counting, attempts=3, backoff=0)
    assert result.passed
    assert result.attempts == 2
    assert not result.failed


async def test_probe_failed() -> None:
    """Test a probe that never passes."""
    counting = CountingProbe(passes_on=None)
    result = await run_probe(counting, attempts=3, backoff=0)
    assert result.passed is False
    assert result.failed
    assert result.attempts == 3
    assert counting.calls == 3


async def test_probe_skipped() -> None:
    """Test a probe that can't run is skipped, which is not a failure."""
    counting = CountingProbe(passes_on=1, available=False)
    result = await run_probe(counting, attempts=3, backoff=0)
    assert result.passed is None
    assert not result.failed
    assert counting.calls == 0


def test_dns_probe_requires_dig(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test the DNS probe is unavailable without dig."""
    monkeypatch.setattr(probe.shutil, "which", lambda _: None)
    dns = probe.DnsProbe("10.0.0.5", 30053, "xboxlive.com", expected="10.0.0.5")
    assert not dns.available()
    assert str(dns) == "xboxlive.com @ 10.0.0.5:30053"


async def test_https_probe_unreachable() -> None:
    """Test the HTTPS probe fails on a port nothing listens on."""
    https = HttpsProbe("https://127.0.0.1:1/health", timeout=1.0)
    assert not await https.check()


async def test_https_probe(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test the HTTPS probe against a mocked health endpoint."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/health":
            return httpx.Response(200, text="OK")
        return httpx.Response(404)

    client_cls = httpx.AsyncClient

    def mock_client(**kwargs) -> httpx.AsyncClient:  # type: ignore[no-untyped-def]
        return client_cls(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(probe.httpx, "AsyncClient", mock_client)

    assert await HttpsProbe("https://10.0.0.5:30443/health").check()
    assert not await HttpsProbe("https://10.0.0.5:30443/missing").check()
    assert [str(request.url) for request in requests] == [
        "https://10.0.0.5:30443/health",
        "https://10.0.0.5:30443/missing",
    ]


@pytest.mark.parametrize(
    ("addresses", "expected"),
    [
        (
            [
                NodeAddress(type="InternalIP", address="10.0.0.5"),
                NodeAddress(type="ExternalIP", address="203.0.113.7"),
            ],
            "203.0.113.7",
        ),
        (
            [
                NodeAddress(type="Hostname", address="vps"),
                NodeAddress(type="InternalIP", address="10.0.0.5"),
            ],
            "10.0.0.5",
        ),
        ([NodeAddress(type="Hostname", address="vps")], "192.0.2.1"),
        ([], "192.0.2.1"),
    ],
)
def test_select_node_address(addresses: list[NodeAddress], expected: str) -> None:
    """Test the node address preference."""
    assert select_node_address(addresses, fallback="192.0.2.1") == expected


@pytest.mark.parametrize(
    ("expected", "out", "record_type", "passed"),
    [
        ("10.0.0.5", "10.0.0.5\n", "A", True),
        ("010.0.0.5", "10.0.0.5\n", "A", True),
        ("10.0.0.5", "10.0.0.6\n", "A", False),
        ("2001:db8::7", "2001:db8:0:0:0:0:0:7\n", "AAAA", True),
        ("0:0:0:0:0:0:0:1", "::1\n", "AAAA", True),
        ("2001:db8::7", "2001:db8::8\n", "AAAA", False),
        ("10.0.0.5", "", "A", False),
        ("10.0.0.5", ";; connection timed out\n", "A", False),
    ],
)
def test_dns_probe_answer(
    expected: str, out: str, record_type: str, passed: bool
) -> None:
    """Test the DNS answer is compared by address value for either family."""
    dns = probe.DnsProbe("10.0.0.5", 30053, "xboxlive.com", expected=expected)
    assert dns.record_type == record_type
    assert dns.matches(out) == passed


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("010.000.000.005", "10.0.0.5"),
        ("2001:DB8::7", "2001:db8::7"),
        ("xboxlive.com.", None),
        ("", None),
    ],
)
def test_parse_address(value: str, expected: str | None) -> None:
    """Test parsing addresses from dig output."""
    result = probe.parse_address(value)
    assert (str(result) if result else None) == expected
