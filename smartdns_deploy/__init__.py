"""
smartdns-deploy converges a Kubernetes namespace to a running DoH Smart DNS
stack: it resolves the server address, provisions TLS credentials, renders the
kustomize overlay with a configuration fingerprint, applies it and verifies
the rollout.
"""

__all__ = [
    "target",
    "credentials",
    "render",
    "rollout",
    "probe",
    "orchestrator",
    "manifest",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
