"""Setup and cleanup steps subpackage.

Each module owns one stage of the run: management cluster provisioning,
Cluster API installation, Flux bootstrap, Backstage installation and the
interactive cleanup.
"""

from aks_capi_bootstrap.steps.backstage import DevServer, configure_github_plugins, install_backstage, launch_dev_server
from aks_capi_bootstrap.steps.capi import install_cluster_api
from aks_capi_bootstrap.steps.cleanup import run_cleanup
from aks_capi_bootstrap.steps.flux import bootstrap_flux
from aks_capi_bootstrap.steps.provision import ensure_azure_session, provision_management_cluster

__all__ = [
    # provision
    "ensure_azure_session",
    "provision_management_cluster",
    # capi
    "install_cluster_api",
    # flux
    "bootstrap_flux",
    # backstage
    "DevServer",
    "install_backstage",
    "configure_github_plugins",
    "launch_dev_server",
    # cleanup
    "run_cleanup",
]
