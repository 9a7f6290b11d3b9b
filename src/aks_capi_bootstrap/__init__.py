"""aks-capi-bootstrap: AKS management cluster bootstrapper.

This package provisions an AKS management cluster, installs Cluster API
with the Azure provider, bootstraps FluxCD and optionally installs a
Backstage portal with a self-service cluster template.

Example usage:
    from aks_capi_bootstrap import Settings, run_setup

    settings = Settings(subscription_id="...", github_org="my-org", github_token="...")
    run_setup(settings, with_backstage=True)
"""

__version__ = "0.1.0"

from aks_capi_bootstrap.bootstrap import run_check, run_cleanup_flow, run_setup
from aks_capi_bootstrap.cli import cli
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.exceptions import (
    BackstageError,
    BootstrapError,
    CapiInstallError,
    ClusterAccessError,
    CommandError,
    ConfigurationError,
    GitOpsError,
    ToolVerificationError,
)
from aks_capi_bootstrap.models import LogLevel, Settings

__all__ = [
    # Version
    "__version__",
    # Main CLI
    "cli",
    # Flows
    "run_check",
    "run_setup",
    "run_cleanup_flow",
    # Classes
    "ManagementCluster",
    "Settings",
    "LogLevel",
    # Exceptions
    "BootstrapError",
    "CommandError",
    "ToolVerificationError",
    "ConfigurationError",
    "ClusterAccessError",
    "CapiInstallError",
    "GitOpsError",
    "BackstageError",
]
