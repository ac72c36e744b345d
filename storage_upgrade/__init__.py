"""Build upgrade manifests, run preflight checks and manage upgrades of a Kubernetes storage cluster."""

__version__ = "0.1.0"