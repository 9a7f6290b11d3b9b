"""Management cluster provisioning.

Ensures the Azure session, the resource group and the AKS management
cluster exist, fetches credentials and verifies API access.
"""

from aks_capi_bootstrap import azure, console
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.exceptions import ClusterAccessError
from aks_capi_bootstrap.models import Settings


def ensure_azure_session(settings: Settings) -> None:
    """Log in if needed and select the configured subscription.

    Raises:
        CommandError: If login or subscription selection fails.

    """
    console.info("Logging in to Azure...")
    azure.ensure_login()
    console.info("Setting Azure subscription...")
    azure.set_subscription(settings.subscription_id)


def ensure_resource_group(settings: Settings) -> bool:
    """Create the resource group unless it exists.

    Returns:
        True if the group was created.

    """
    console.info(f"Checking if resource group {console.highlight(settings.resource_group)} exists...")
    if azure.resource_group_exists(settings.resource_group):
        console.info(f"Resource group {settings.resource_group} already exists.")
        return False

    console.action(f"Creating resource group {settings.resource_group}...")
    azure.create_resource_group(settings.resource_group, settings.location)
    console.success(f"Resource group {settings.resource_group} created")
    return True


def ensure_aks_cluster(settings: Settings) -> bool:
    """Create the AKS management cluster unless it exists.

    Returns:
        True if the cluster was created.

    """
    console.info(f"Checking if AKS cluster {console.highlight(settings.cluster_name)} exists...")
    if azure.aks_cluster_exists(settings.resource_group, settings.cluster_name):
        console.info(f"AKS cluster {settings.cluster_name} already exists.")
        return False

    admin_group_id = settings.aad_admin_group_id or azure.signed_in_user_id()
    console.action(f"Creating AKS management cluster {settings.cluster_name} (this takes several minutes)...")
    azure.create_aks_cluster(settings, admin_group_id)
    console.success("AKS management cluster created successfully.")
    return True


def verify_cluster_access(settings: Settings, cluster: ManagementCluster) -> None:
    """Check API access, escalating once with a cluster admin role assignment.

    Args:
        settings: Resolved settings.
        cluster: Management cluster client.

    Raises:
        ClusterAccessError: If nodes still cannot be listed after escalation.
        CommandError: If the role assignment or credential fetch fails.

    """
    console.info("Verifying cluster access...")
    cluster.reload()
    if cluster.can_list_nodes():
        console.success("Cluster access verified")
        return

    console.warning("Regular access failed, granting cluster admin role and retrying...")
    azure.assign_role(
        azure.signed_in_user_id(),
        azure.AKS_RBAC_CLUSTER_ADMIN_ROLE,
        settings.cluster_resource_id,
    )
    azure.get_credentials(settings.resource_group, settings.cluster_name)
    cluster.reload()

    if not cluster.can_list_nodes():
        raise ClusterAccessError("Failed to access AKS cluster even with admin role.")
    console.success("Cluster access verified after role assignment")


def provision_management_cluster(settings: Settings, cluster: ManagementCluster) -> None:
    """Ensure the management cluster exists and is reachable.

    Credentials are fetched on every run, whether or not the cluster was
    just created.

    Args:
        settings: Resolved settings.
        cluster: Management cluster client, reloaded after credentials change.

    """
    ensure_resource_group(settings)
    ensure_aks_cluster(settings)

    console.info("Getting credentials for AKS cluster...")
    azure.get_credentials(settings.resource_group, settings.cluster_name)

    verify_cluster_access(settings, cluster)
