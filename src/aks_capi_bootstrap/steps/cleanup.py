"""Interactive teardown of everything setup creates.

Each destructive step asks for its own confirmation. Declining or failing
one step never stops the ones after it.
"""

import shutil
import time

from kubernetes.client.rest import ApiException
from rich.markup import escape
from urllib3.exceptions import MaxRetryError

from aks_capi_bootstrap import azure, console, prompts
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.exceptions import BootstrapError, ClusterAccessError, CommandError
from aks_capi_bootstrap.models import SP_NAME_PREFIX, CapiCluster, Settings
from aks_capi_bootstrap.steps.backstage import stop_stray_dev_servers
from aks_capi_bootstrap.steps.provision import ensure_azure_session

# Seconds Entra ID needs before deletions show up in `az ad app list`
PROPAGATION_DELAY = 5

# Polling for CAPI Cluster objects to go away before the controllers are removed
CAPI_DELETE_TIMEOUT = 600
CAPI_DELETE_POLL_INTERVAL = 10


def delete_capi_clusters(settings: Settings, cluster: ManagementCluster) -> int:
    """Delete CAPI-managed clusters running on the management cluster.

    Listing failures only warn; a cluster that fails to delete is skipped.

    Returns:
        Number of clusters deleted.

    """
    console.info("Getting credentials for the management cluster...")
    try:
        azure.get_credentials(settings.resource_group, settings.cluster_name)
        cluster.reload()
        clusters = cluster.list_capi_clusters()
    except (BootstrapError, ApiException, MaxRetryError) as e:
        console.warning(f"Could not list CAPI clusters: {escape(str(e))}")
        return 0

    if not clusters:
        console.info("No CAPI clusters found.")
        return 0

    console.info("Found the following CAPI clusters:")
    for capi_cluster in clusters:
        console.step(f"{capi_cluster.namespace}/{capi_cluster.name}")

    if not prompts.confirm("Do you want to delete these CAPI clusters?", default=False):
        console.info("Skipping CAPI cluster deletion.")
        return 0

    deleted: list[CapiCluster] = []
    for capi_cluster in clusters:
        console.action(f"Deleting CAPI cluster {capi_cluster.name} in namespace {capi_cluster.namespace}...")
        try:
            cluster.delete_capi_cluster(capi_cluster)
        except ApiException as e:
            console.warning(f"Failed to delete CAPI cluster {capi_cluster.name}: {escape(str(e.reason))}")
            continue
        except ClusterAccessError as e:
            console.warning(f"Failed to delete CAPI cluster {capi_cluster.name}: {escape(str(e))}")
            continue
        deleted.append(capi_cluster)

    if deleted:
        wait_for_capi_deletions(cluster, deleted)
    return len(deleted)


def wait_for_capi_deletions(
    cluster: ManagementCluster,
    pending: list[CapiCluster],
    *,
    timeout: int = CAPI_DELETE_TIMEOUT,
    interval: int = CAPI_DELETE_POLL_INTERVAL,
) -> bool:
    """Wait until the deleted Cluster objects are gone from the API server.

    CAPZ removes a cluster's Azure resources before its finalizer lets the
    Cluster object go, so the management cluster must stay up until then.
    Running out of time or losing API access only warns.

    Returns:
        True if every pending cluster disappeared in time.

    """
    console.info("Waiting for cluster deletions to complete...")
    remaining = set(pending)
    for _ in range(max(1, timeout // interval)):
        time.sleep(interval)
        try:
            remaining &= set(cluster.list_capi_clusters())
        except (ApiException, ClusterAccessError) as e:
            console.warning(f"Could not check CAPI cluster deletion: {escape(str(e))}")
            return False
        if not remaining:
            console.success("CAPI clusters deleted")
            return True

    console.warning("CAPI clusters are still being deleted; their Azure resources may need manual cleanup:")
    for capi_cluster in sorted(remaining):
        console.step(f"{capi_cluster.namespace}/{capi_cluster.name}")
    return False


def delete_resource_group(settings: Settings) -> bool:
    """Start deleting the resource group after confirmation.

    Returns:
        True if deletion was started.

    """
    console.info(f"Checking if resource group {console.highlight(settings.resource_group)} exists...")
    try:
        exists = azure.resource_group_exists(settings.resource_group)
    except CommandError as e:
        console.error(f"Could not check resource group {settings.resource_group}: {escape(str(e))}")
        return False

    if not exists:
        console.info(f"Resource group {settings.resource_group} not found.")
        return False

    question = (
        f"Delete resource group {settings.resource_group} and ALL its resources "
        f"(including AKS cluster {settings.cluster_name})?"
    )
    if not prompts.confirm(question, default=False):
        console.info("Skipping resource group deletion.")
        return False

    console.action(f"Deleting resource group {settings.resource_group}...")
    try:
        azure.delete_resource_group(settings.resource_group)
    except CommandError as e:
        console.error(f"Failed to delete resource group {settings.resource_group}: {escape(str(e))}")
        return False

    console.success(f"Resource group {settings.resource_group} deletion initiated (runs in the background)")
    return True


def delete_service_principals(prefix: str = SP_NAME_PREFIX) -> int:
    """Delete app registrations created by setup and report leftovers.

    Returns:
        Number of registrations still present afterwards.

    """
    console.info(f"Looking for service principals starting with {console.highlight(prefix)}...")
    try:
        apps = azure.list_app_registrations(prefix)
    except CommandError as e:
        console.warning(f"Could not list app registrations: {escape(str(e))}")
        return 0

    if not apps:
        console.info("No service principals found.")
        return 0

    console.info("Found the following service principals:")
    for app in apps:
        console.step(f"{escape(app.display_name)} (AppID: {app.app_id})")

    if not prompts.confirm("Do you want to delete these service principals?", default=False):
        console.info("Skipping service principal deletion.")
        return len(apps)

    for app in apps:
        azure.delete_app_registration(app)

    console.info("Verifying service principal deletion...")
    time.sleep(PROPAGATION_DELAY)
    try:
        remaining = azure.list_app_registrations(prefix)
    except CommandError as e:
        console.warning(f"Could not verify deletion: {escape(str(e))}")
        return 0

    if not remaining:
        console.success("All service principals deleted")
        return 0

    console.warning("Some service principals could not be deleted:")
    for app in remaining:
        console.warning(f"{escape(app.display_name)} (AppID: {app.app_id})")
    console.warning("To delete them manually, run:")
    for app in remaining:
        console.warning(f"az ad app delete --id {app.app_id}")
    return len(remaining)


def delete_backstage(settings: Settings) -> bool:
    """Stop the dev server and remove the Backstage directory after confirmation.

    Returns:
        True if the directory was removed.

    """
    backstage_dir = settings.backstage_dir
    if not backstage_dir.is_dir():
        console.info(f"Backstage directory not found at {escape(str(backstage_dir))}.")
        return False

    if not prompts.confirm(f"Delete the Backstage directory at {backstage_dir}?", default=False):
        console.info("Skipping Backstage directory deletion.")
        return False

    stop_stray_dev_servers(backstage_dir)
    console.action(f"Deleting Backstage directory {escape(str(backstage_dir))}...")
    try:
        shutil.rmtree(backstage_dir)
    except OSError as e:
        console.error(f"Failed to delete {escape(str(backstage_dir))}: {escape(str(e.strerror))}")
        return False

    console.success("Backstage directory deleted")
    return True


def run_cleanup(settings: Settings, cluster: ManagementCluster) -> bool:
    """Run the full teardown.

    Args:
        settings: Resolved settings (subscription id required).
        cluster: Management cluster client for CAPI cluster deletion.

    Returns:
        False if the user declined the initial confirmation.

    Raises:
        CommandError: If Azure login or subscription selection fails.

    """
    console.warning("This will delete resources created by the setup. This action cannot be undone.")
    if not prompts.confirm("Are you sure you want to continue?", default=False):
        console.info("Cleanup cancelled.")
        return False

    ensure_azure_session(settings)

    if not azure.aks_cluster_exists(settings.resource_group, settings.cluster_name):
        console.info("Management cluster not found. Skipping CAPI cluster cleanup.")
    elif prompts.confirm(
        f"Will you delete the entire management cluster {settings.cluster_name} (resource group deletion)?",
        default=True,
    ):
        console.info("CAPI clusters will be removed along with the management cluster.")
    else:
        delete_capi_clusters(settings, cluster)

    delete_resource_group(settings)
    delete_service_principals()
    delete_backstage(settings)

    console.success("Cleanup completed.")
    return True
