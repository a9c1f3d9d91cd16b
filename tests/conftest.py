"""Fixtures shared by the smartdns-deploy tests."""

from collections.abc import Callable
import pathlib
import shutil

import pytest

from smartdns_deploy.config import ProbeConfig, ProjectConfig, RolloutConfig
from smartdns_deploy.kustomize import Kustomize

from . import TESTDATA, FakePlatform, local_builder


@pytest.fixture(name="project")
def project_fixture(tmp_path: pathlib.Path) -> pathlib.Path:
    """A writable copy of the example project directory."""
    project = tmp_path / "project"
    shutil.copytree(TESTDATA, project)
    return project


@pytest.fixture(name="config")
def config_fixture(project: pathlib.Path, tmp_path: pathlib.Path) -> ProjectConfig:
    """Project configuration with fast rollout polling and no probe retries."""
    return ProjectConfig(
        root=project,
        letsencrypt_dir=tmp_path / "letsencrypt",
        rollout=RolloutConfig(timeout=1.0, restart_timeout=1.0, poll_interval=0.01),
        probe=ProbeConfig(attempts=1, backoff=0.0),
    )


@pytest.fixture(name="platform")
def platform_fixture() -> FakePlatform:
    """A fake cluster with every workload ready on the first poll."""
    return FakePlatform()


@pytest.fixture(name="builder")
def builder_fixture() -> Callable[[pathlib.Path], Kustomize]:
    """A templating engine that does not need any binary."""
    return local_builder
