"""Configuration objects for smartdns-deploy."""

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_NAMESPACE = "doh-system"
DEFAULT_WORKLOADS = ("coredns-smartdns", "doh-backend", "doh-nginx")
LETSENCRYPT_LIVE_DIR = Path("/etc/letsencrypt/live")


@dataclass
class RolloutConfig:
    """Configuration for the RolloutController."""

    timeout: float = 120.0
    """Seconds each workload has to finish its rollout."""

    restart_timeout: float = 60.0
    """Seconds each workload has to come back after a restart."""

    poll_interval: float = 2.0
    """Seconds between two rollout status queries of one workload."""


@dataclass
class ProbeConfig:
    """Configuration for the post-deploy verification probes."""

    attempts: int = 3
    backoff: float = 3.0
    dns_port: int = 30053
    https_port: int = 30443
    dns_query: str = "xboxlive.com"
    health_path: str = "/health"
    connect_timeout: float = 3.0


@dataclass
class ProjectConfig:
    """Layout of a deployment project directory and the cluster names it uses."""

    root: Path
    """Project directory holding base/, overlays/, coredns/ and .env."""

    namespace: str = DEFAULT_NAMESPACE
    tls_secret_name: str = "doh-tls-certs"
    workloads: tuple[str, ...] = DEFAULT_WORKLOADS
    hosts_configmap_name: str = "xbox-hosts"
    state_file_name: str = ".env"
    letsencrypt_dir: Path = LETSENCRYPT_LIVE_DIR
    """Output directory of an externally managed certificate authority."""

    rollout: RolloutConfig = field(default_factory=RolloutConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)

    @property
    def base_dir(self) -> Path:
        return self.root / "base"

    @property
    def overlays_dir(self) -> Path:
        return self.root / "overlays"

    @property
    def state_file(self) -> Path:
        return self.root / self.state_file_name

    @property
    def hosts_template(self) -> Path:
        return self.root / "coredns" / "xbox-hosts.template"

    @property
    def generated_hosts_file(self) -> Path:
        return self.base_dir / f"configmap-{self.hosts_configmap_name}.yaml"

    @property
    def namespace_file(self) -> Path:
        return self.base_dir / "namespace.yaml"

    @property
    def static_config_files(self) -> list[Path]:
        """Configuration-bearing files shipped with the project."""
        return [self.base_dir / "configmap-coredns.yaml"]

    @property
    def ssl_dir(self) -> Path:
        """Where generated certificates are written."""
        return self.root / "ssl"

    @property
    def credential_search_paths(self) -> list[Path]:
        """Certificate directories in priority order."""
        return [
            self.letsencrypt_dir,
            self.ssl_dir,
            self.root / "certs",
            self.root / "tls",
        ]
