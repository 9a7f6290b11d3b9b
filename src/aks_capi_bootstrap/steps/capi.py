"""Cluster API installation with the Azure infrastructure provider.

The ordering below is load-bearing: the identity secret must exist before
the AzureClusterIdentity is submitted, and clusterctl must have installed
the CRDs before the identity can be created.
"""

import os
from datetime import date

from kubernetes.client.rest import ApiException
from rich.markup import escape

from aks_capi_bootstrap import azure, console, rendering, shell
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.exceptions import CapiInstallError, ClusterAccessError, CommandError
from aks_capi_bootstrap.models import SP_NAME_PREFIX, ClusterIdentity, ServicePrincipal, Settings

CAPI_NAMESPACE = "capi-system"
CAPZ_NAMESPACE = "capz-system"

POD_READY_TIMEOUT = "300s"

# (namespace, provider label) pairs whose controllers must become ready
_CONTROLLERS: tuple[tuple[str, str], ...] = (
    (CAPI_NAMESPACE, "cluster.x-k8s.io/provider=cluster-api"),
    (CAPZ_NAMESPACE, "cluster.x-k8s.io/provider=infrastructure-azure"),
)


def service_principal_name(today: date | None = None) -> str:
    """Name for the CAPI service principal, e.g. ClusterAPI-Creator-20250405."""
    return f"{SP_NAME_PREFIX}-Creator-{(today or date.today()).strftime('%Y%m%d')}"


def create_identity_principal(settings: Settings) -> ServicePrincipal:
    """Create the Contributor service principal and export its credentials.

    The credentials are placed in os.environ so that clusterctl and any
    later command inherit them.
    """
    name = service_principal_name()
    console.action(f"Creating service principal {console.highlight(name)} for CAPI initialization...")
    principal = azure.create_service_principal(name, role="Contributor", scope=settings.subscription_scope)
    console.success(f"Service principal created with appId: {principal.app_id}")

    os.environ.update(principal.as_environment(settings.subscription_id))
    return principal


def store_identity_secret(cluster: ManagementCluster, identity: ClusterIdentity, principal: ServicePrincipal) -> None:
    """Write the service principal secret into the cluster."""
    console.action("Creating Kubernetes secret for CAPI service principal...")
    try:
        cluster.apply_secret(
            identity.secret_name,
            identity.secret_namespace,
            {"clientSecret": principal.password},
        )
    except ApiException as e:
        raise CapiInstallError(f"Failed to create or update Kubernetes secret for CAPI: {e.reason}") from e
    os.environ.update(identity.as_environment())


def wait_for_controllers() -> None:
    """Wait for the CAPI and CAPZ controller pods; timeouts only warn."""
    console.info("Waiting for Cluster API components to be ready...")
    for namespace, selector in _CONTROLLERS:
        result = shell.run(
            [
                "kubectl", "wait",
                "--for=condition=ready",
                f"--timeout={POD_READY_TIMEOUT}",
                "pod", "-l", selector,
                "-n", namespace,
            ],
            check=False,
        )  # fmt: skip
        if result.returncode != 0:
            console.warning(f"Timeout waiting for pods in {namespace}. Continuing anyway.")
        else:
            console.success(f"Controllers in {namespace} are ready")


def create_cluster_identity(cluster: ManagementCluster, identity: ClusterIdentity) -> None:
    """Submit the AzureClusterIdentity and read it back.

    Raises:
        CapiInstallError: If the identity cannot be created or read back.

    """
    console.action("Creating AzureClusterIdentity resource...")
    manifest = rendering.render_manifest("azure-cluster-identity.yaml.j2", identity=identity)
    try:
        cluster.apply_cluster_identity(manifest)
        created = cluster.get_cluster_identity(identity.name, identity.namespace)
    except ApiException as e:
        raise CapiInstallError(f"Failed to create AzureClusterIdentity: {e.reason}") from e

    if created is None:
        raise CapiInstallError("Failed to create AzureClusterIdentity.")
    console.success(f"AzureClusterIdentity {console.highlight(identity.name)} created")


def install_cluster_api(settings: Settings, cluster: ManagementCluster) -> bool:
    """Install CAPI/CAPZ unless the capi-system namespace already exists.

    Args:
        settings: Resolved settings.
        cluster: Management cluster client.

    Returns:
        True if Cluster API was installed by this call.

    Raises:
        CapiInstallError: If the secret or identity cannot be created.
        CommandError: If the service principal or clusterctl init fails.

    """
    console.info("Checking if Cluster API is already installed...")
    if cluster.namespace_exists(CAPI_NAMESPACE):
        console.info("Cluster API appears to be already installed.")
        return False

    console.info("Setting up prerequisites for Cluster API...")
    principal = create_identity_principal(settings)
    identity = ClusterIdentity(client_id=principal.app_id, tenant_id=principal.tenant_id)

    store_identity_secret(cluster, identity, principal)

    console.action("Installing Cluster API with Azure provider...")
    try:
        shell.run(["clusterctl", "init", "--infrastructure", "azure"], capture=False)
    except CommandError as e:
        raise CapiInstallError(f"Failed to install Cluster API: {e}") from e

    wait_for_controllers()
    create_cluster_identity(cluster, identity)

    for namespace in (CAPZ_NAMESPACE, CAPI_NAMESPACE):
        try:
            pods = cluster.list_pod_names(namespace)
        except (ApiException, ClusterAccessError) as e:
            console.debug(f"Could not list pods in {namespace}: {escape(str(e))}")
            continue
        console.debug(f"Pods in {namespace}: {', '.join(pods) or 'none'}")

    console.success("Cluster API installed successfully.")
    return True
