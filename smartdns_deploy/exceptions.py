"""Exceptions related to smartdns-deploy.

Every terminal failure carries an optional `remediation` that tells the
operator the exact command or manual step that fixes it.
"""

__all__ = [
    "DeployException",
    "InvalidTargetError",
    "ToolingUnavailableError",
    "NoCredentialToolError",
    "ClusterUnreachableError",
    "CommandException",
    "KubectlException",
    "KustomizeException",
    "ApplyRejectedError",
    "RenderException",
]


class DeployException(Exception):
    """Generic base exception used for this library."""

    def __init__(self, message: str, remediation: str | None = None) -> None:
        super().__init__(message)
        self.remediation = remediation


class InvalidTargetError(DeployException):
    """Raised when the target address is missing or not an IP literal."""


class ToolingUnavailableError(DeployException):
    """Raised when a required external binary is not installed."""


class NoCredentialToolError(ToolingUnavailableError):
    """Raised when a certificate must be generated but openssl is missing."""


class ClusterUnreachableError(DeployException):
    """Raised when the cluster API can't be reached with the current kubeconfig."""


class CommandException(DeployException):
    """Raised when there is a failure running a subcommand."""


class KubectlException(CommandException):
    """Raised when there is a failure running a kubectl command."""


class KustomizeException(CommandException):
    """Raised when there is a failure running the templating engine."""


class ApplyRejectedError(KubectlException):
    """Raised when the cluster rejects the rendered resource set.

    Anything already applied before the rejection stays applied.
    """


class RenderException(DeployException):
    """Raised when the manifest inputs are missing or malformed."""
