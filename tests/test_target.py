"""Tests for resolving the target address."""

import pathlib

import pytest

from smartdns_deploy.exceptions import InvalidTargetError
from smartdns_deploy.manifest import Overlay
from smartdns_deploy.target import (
    StateFile,
    TargetSources,
    is_valid_address,
    looks_like_address,
    resolve,
)


@pytest.fixture(name="state_file")
def state_file_fixture(tmp_path: pathlib.Path) -> StateFile:
    """A state file that does not exist yet."""
    return StateFile(tmp_path / ".env")


@pytest.mark.parametrize(
    "value",
    [
        "203.0.113.7",
        "10.0.0.5",
        "010.000.000.005",
        "255.255.255.255",
        "::1",
        "2001:db8::7",
        "0:0:0:0:0:0:0:1",
        "fe80::1:2",
    ],
)
def test_valid_address(value: str) -> None:
    """Test IP literals that are accepted as the target."""
    assert is_valid_address(value)


@pytest.mark.parametrize(
    "value",
    [
        "",
        "example.com",
        "256.1.1.1",
        "1.2.3",
        "1.2.3.4.5",
        "1.2.3.0004",
        "1.2.3.-4",
        "2001:db8:::7",
        "gggg::1",
        "fe80::1%eth0",
        "fe80::1%1",
        "production",
    ],
)
def test_invalid_address(value: str) -> None:
    """Test values that are rejected as the target."""
    assert not is_valid_address(value)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("203.0.113.7", True),
        ("2001:db8::7", True),
        ("999.1.1.1", True),
        ("production", False),
        ("base", False),
        ("", False),
    ],
)
def test_looks_like_address(value: str, expected: bool) -> None:
    """Test telling an address argument apart from an overlay name."""
    assert looks_like_address(value) == expected


def test_explicit_address_persisted(state_file: StateFile) -> None:
    """Test an explicit address is used and written to the state file."""
    desired = resolve(
        TargetSources(state_file=state_file, explicit="10.0.0.5"),
        overlay=Overlay.PRODUCTION,
    )
    assert desired.target_address == "10.0.0.5"
    assert desired.overlay == Overlay.PRODUCTION
    assert desired.domain is None
    assert state_file.path.read_text() == "VPS_IP=10.0.0.5\n"


def test_precedence(state_file: StateFile) -> None:
    """Test the explicit address wins over the environment and the state file."""
    state_file.path.write_text("VPS_IP=192.0.2.1\n")
    environ = {"VPS_IP": "198.51.100.1"}

    desired = resolve(
        TargetSources(state_file=state_file, explicit="203.0.113.7", environ=environ)
    )
    assert desired.target_address == "203.0.113.7"

    desired = resolve(TargetSources(state_file=state_file, environ=environ))
    assert desired.target_address == "198.51.100.1"

    desired = resolve(TargetSources(state_file=state_file))
    assert desired.target_address == "192.0.2.1"


def test_state_file_never_rewritten(state_file: StateFile) -> None:
    """Test an existing address in the state file is kept as is."""
    state_file.path.write_text("# settings\nVPS_IP=192.0.2.1\nDOMAIN=dns.example.com")

    desired = resolve(TargetSources(state_file=state_file, explicit="203.0.113.7"))

    assert desired.target_address == "203.0.113.7"
    assert desired.domain == "dns.example.com"
    assert (
        state_file.path.read_text()
        == "# settings\nVPS_IP=192.0.2.1\nDOMAIN=dns.example.com"
    )


def test_state_file_appended(state_file: StateFile) -> None:
    """Test the address is added after the existing content."""
    state_file.path.write_text("DOMAIN=dns.example.com")

    resolve(TargetSources(state_file=state_file, explicit="2001:db8::7"))

    assert (
        state_file.path.read_text() == "DOMAIN=dns.example.com\nVPS_IP=2001:db8::7\n"
    )


def test_domain_from_environment(state_file: StateFile) -> None:
    """Test the domain is read from the environment before the state file."""
    state_file.path.write_text("DOMAIN=old.example.com\n")
    desired = resolve(
        TargetSources(
            state_file=state_file,
            explicit="10.0.0.5",
            environ={"DOMAIN": "dns.example.com"},
        )
    )
    assert desired.domain == "dns.example.com"


def test_address_text_preserved(state_file: StateFile) -> None:
    """Test the address is not normalized."""
    desired = resolve(
        TargetSources(state_file=state_file, explicit="0:0:0:0:0:0:0:1")
    )
    assert desired.target_address == "0:0:0:0:0:0:0:1"


def test_missing_address(state_file: StateFile) -> None:
    """Test failure when no source has an address and prompting is not allowed."""
    with pytest.raises(InvalidTargetError, match="required") as exc_info:
        resolve(TargetSources(state_file=state_file))
    assert "VPS_IP" in (exc_info.value.remediation or "")
    assert not state_file.path.exists()


def test_invalid_address_not_persisted(state_file: StateFile) -> None:
    """Test an invalid address fails before anything is written."""
    with pytest.raises(InvalidTargetError, match="Invalid IP address: 1.2.3"):
        resolve(TargetSources(state_file=state_file, explicit="1.2.3"))
    assert not state_file.path.exists()


def test_prompt(state_file: StateFile) -> None:
    """Test the operator is prompted when nothing else has an address."""
    desired = resolve(
        TargetSources(state_file=state_file),
        interactive=True,
        prompt=lambda: " 203.0.113.7 ",
    )
    assert desired.target_address == "203.0.113.7"
    assert state_file.get("VPS_IP") == "203.0.113.7"


def test_prompt_not_used_when_address_known(state_file: StateFile) -> None:
    """Test the prompt is skipped when another source has an address."""

    def fail() -> str:
        raise AssertionError("Prompt should not be called")

    desired = resolve(
        TargetSources(state_file=state_file, environ={"VPS_IP": "10.0.0.5"}),
        interactive=True,
        prompt=fail,
    )
    assert desired.target_address == "10.0.0.5"


def test_empty_prompt(state_file: StateFile) -> None:
    """Test an empty answer to the prompt."""
    with pytest.raises(InvalidTargetError, match="required"):
        resolve(TargetSources(state_file=state_file), interactive=True, prompt=str)


def test_state_file_empty_value(state_file: StateFile) -> None:
    """Test an empty persisted value is treated as missing but never replaced."""
    state_file.path.write_text("VPS_IP=\n")
    with pytest.raises(InvalidTargetError):
        resolve(TargetSources(state_file=state_file))

    resolve(TargetSources(state_file=state_file, explicit="10.0.0.5"))
    assert state_file.path.read_text() == "VPS_IP=\n"


def test_scoped_address_not_persisted(state_file: StateFile) -> None:
    """Test an IPv6 address with a zone index is rejected before it is saved."""
    with pytest.raises(InvalidTargetError, match="Invalid IP address"):
        resolve(TargetSources(state_file=state_file, explicit="fe80::1%eth0"))
    assert not state_file.path.exists()
