"""Provisioning of the TLS certificate served by the DoH endpoint.

An existing certificate and key are preferred. Candidate directories are
searched in priority order and the first one holding both a certificate and a
key wins. When none is found a self-signed pair is generated with openssl.
Either way the pair is stored in the cluster as a TLS secret.
"""

import logging
import os
from pathlib import Path
import shutil

from .command import Command, run
from .config import ProjectConfig
from .exceptions import CommandException, NoCredentialToolError
from .kubectl import Platform
from .manifest import (
    CredentialMaterial,
    DesiredState,
    DiscoveredCredential,
    GeneratedCredential,
)

__all__ = [
    "discover",
    "generate",
    "provision",
    "subject_alt_names",
]

_LOGGER = logging.getLogger(__name__)

OPENSSL_BIN = "openssl"

# Key strength and validity of generated certificates
KEY_SIZE = 2048
VALIDITY_DAYS = 3650
ORGANIZATION = "DoH Smart DNS"

# Recognized file names, most preferred first
CERTIFICATE_NAMES = ("fullchain.pem", "tls.crt", "cert.pem")
KEY_NAMES = ("privkey.pem", "tls.key", "key.pem")

GENERATED_CERTIFICATE = "tls.crt"
GENERATED_KEY = "tls.key"


def _first_existing(directory: Path, names: tuple[str, ...]) -> Path | None:
    for name in names:
        if (path := directory / name).is_file():
            return path
    return None


def _find_pair(candidate: Path) -> DiscoveredCredential | None:
    """Return the first directory under the candidate holding both files."""
    for root, dirs, _ in os.walk(candidate, followlinks=True):
        dirs.sort()
        directory = Path(root)
        cert = _first_existing(directory, CERTIFICATE_NAMES)
        key = _first_existing(directory, KEY_NAMES)
        if cert and key:
            return DiscoveredCredential(certificate_path=cert, key_path=key)
        if cert or key:
            _LOGGER.debug("Ignoring incomplete certificate pair in %s", directory)
    return None


def discover(search_paths: list[Path]) -> DiscoveredCredential | None:
    """Return the certificate pair from the first directory that has one."""
    for candidate in search_paths:
        if not candidate.is_dir():
            continue
        try:
            if found := _find_pair(candidate):
                return found
        except PermissionError as err:
            _LOGGER.debug("Unable to search %s: %s", candidate, err)
    return None


def subject_alt_names(desired: DesiredState) -> list[str]:
    """Return the identities the generated certificate is valid for."""
    names = [f"IP:{desired.target_address}"]
    if desired.domain:
        names.append(f"DNS:{desired.domain}")
    return names


def _openssl_args(desired: DesiredState, cert: Path, key: Path) -> list[str]:
    common_name = desired.domain or desired.target_address
    return [
        OPENSSL_BIN,
        "req",
        "-x509",
        "-newkey",
        f"rsa:{KEY_SIZE}",
        "-sha256",
        "-days",
        str(VALIDITY_DAYS),
        "-nodes",
        "-keyout",
        str(key),
        "-out",
        str(cert),
        "-subj",
        f"/CN={common_name}/O={ORGANIZATION}",
        "-addext",
        f"subjectAltName={','.join(subject_alt_names(desired))}",
    ]


async def generate(desired: DesiredState, ssl_dir: Path) -> GeneratedCredential:
    """Generate a self-signed certificate, overwriting any previous one."""
    if shutil.which(OPENSSL_BIN) is None:
        raise NoCredentialToolError(
            "openssl is required to generate self-signed certs",
            remediation=(
                "Install it: sudo apt install openssl (or equivalent)\n"
                f"Or provide your own certs in: {ssl_dir}/"
            ),
        )
    ssl_dir.mkdir(parents=True, exist_ok=True)
    cert = ssl_dir / GENERATED_CERTIFICATE
    key = ssl_dir / GENERATED_KEY
    try:
        await run(Command(_openssl_args(desired, cert, key)))
    except CommandException as err:
        raise CommandException(
            str(err),
            remediation=(
                f"Check that openssl 1.1.1 or newer is installed and {ssl_dir} is "
                f"writable, or provide your own certs in: {ssl_dir}/"
            ),
        ) from err
    _LOGGER.info(
        "Self-signed cert generated in %s (valid %d days)", ssl_dir, VALIDITY_DAYS
    )
    _LOGGER.warning("For production, replace with real certs (Let's Encrypt, etc.)")
    return GeneratedCredential(certificate_path=cert, key_path=key)


async def provision(
    desired: DesiredState,
    search_paths: list[Path],
    platform: Platform,
    config: ProjectConfig,
) -> CredentialMaterial:
    """Find or generate the certificate and store it as the cluster TLS secret."""
    material: CredentialMaterial
    if found := discover(search_paths):
        _LOGGER.info("Found existing cert: %s", found.certificate_path)
        _LOGGER.info("Found existing key:  %s", found.key_path)
        material = found
    else:
        _LOGGER.info("No TLS certificates found, generating self-signed cert")
        material = await generate(desired, config.ssl_dir)

    # The secret can't be created before its namespace
    if config.namespace_file.is_file():
        await platform.apply_file(config.namespace_file)

    result = await platform.create_or_update_secret(
        config.tls_secret_name, material.certificate_path, material.key_path
    )
    _LOGGER.info(
        "TLS secret %s %s in %s",
        config.tls_secret_name,
        result.action,
        config.namespace,
    )
    return material
