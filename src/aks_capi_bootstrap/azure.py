"""Azure CLI operations.

Thin wrappers around `az` used by the provisioning, CAPI and cleanup steps.
Existence probes return booleans; everything else raises CommandError on
failure.
"""

import json

from icecream import ic
from rich.markup import escape

from aks_capi_bootstrap import console, shell
from aks_capi_bootstrap.models import AUTO_VERSION, AppRegistration, ServicePrincipal, Settings

AKS_RBAC_CLUSTER_ADMIN_ROLE = "Azure Kubernetes Service RBAC Cluster Admin"

# Options applied to every management cluster this tool creates
_AKS_CREATE_OPTIONS: tuple[str, ...] = (
    "--node-count", "3",
    "--node-vm-size", "Standard_D2pds_v5",
    "--generate-ssh-keys",
    "--enable-managed-identity",
    "--enable-workload-identity",
    "--enable-oidc-issuer",
    "--network-plugin", "azure",
    "--network-plugin-mode", "overlay",
    "--network-dataplane", "cilium",
    "--zones", "1", "2", "3",
    "--enable-addons", "monitoring",
    "--enable-msi-auth-for-monitoring",
    "--enable-aad",
    "--enable-azure-rbac",
    "--auto-upgrade-channel", "stable",
    "--node-osdisk-size", "64",
    "--node-osdisk-type", "Ephemeral",
    "--max-pods", "110",
    "--enable-cluster-autoscaler",
    "--min-count", "1",
    "--max-count", "5",
    "--os-sku", "AzureLinux",
    "--tags", "environment=management", "purpose=clusterapi",
)  # fmt: skip


def _az(*args: str, **kwargs: object) -> str:
    return shell.run(["az", *args], **kwargs).stdout.strip()  # type: ignore[arg-type]


def ensure_login() -> None:
    """Log in interactively unless an Azure CLI session already exists."""
    if shell.succeeds(["az", "account", "show"]):
        console.step("Existing Azure CLI session found")
        return
    console.action("Logging in to Azure...")
    shell.run(["az", "login"], capture=False)


def set_subscription(subscription_id: str) -> None:
    """Select the subscription every later `az` call targets."""
    _az("account", "set", "--subscription", subscription_id)


def signed_in_user_id() -> str:
    """Object id of the signed-in Entra user."""
    return _az("ad", "signed-in-user", "show", "--query", "id", "-o", "tsv")


def default_kubernetes_version(location: str) -> str:
    """Return the default AKS version offered in a region, or '' if unknown."""
    result = shell.run(
        [
            "az", "aks", "get-versions",
            "--location", location,
            "--query", "orchestrators[?default].orchestratorVersion | [0]",
            "-o", "tsv",
        ],
        check=False,
    )  # fmt: skip
    if result.returncode != 0:
        ic(result.stderr)
        return ""
    return result.stdout.strip()


def resource_group_exists(name: str) -> bool:
    """Return True if the resource group exists."""
    return _az("group", "exists", "--name", name).lower() == "true"


def create_resource_group(name: str, location: str) -> None:
    _az("group", "create", "--name", name, "--location", location, "-o", "none")


def delete_resource_group(name: str) -> None:
    """Start deleting the resource group without waiting for completion."""
    _az("group", "delete", "--name", name, "--yes", "--no-wait")


def aks_cluster_exists(resource_group: str, name: str) -> bool:
    """Return True if `az aks show` finds the cluster."""
    return shell.succeeds(["az", "aks", "show", "--resource-group", resource_group, "--name", name])


def create_aks_cluster(settings: Settings, admin_group_id: str) -> None:
    """Create the management cluster with the fixed option set.

    Output streams to the terminal because creation takes several minutes.

    Args:
        settings: Resolved settings naming the cluster, group and version.
        admin_group_id: Entra object id granted AAD cluster admin.

    """
    cmd = [
        "az", "aks", "create",
        "--resource-group", settings.resource_group,
        "--name", settings.cluster_name,
        "--location", settings.location,
        "--aad-admin-group-object-ids", admin_group_id,
        *_AKS_CREATE_OPTIONS,
    ]  # fmt: skip
    # an unresolved "auto" leaves the choice to Azure
    if settings.kubernetes_version != AUTO_VERSION:
        cmd.extend(["--kubernetes-version", settings.kubernetes_version])
    shell.run(cmd, capture=False)


def get_credentials(resource_group: str, name: str, *, admin: bool = True) -> None:
    """Merge the cluster's kubeconfig, overwriting any existing entry."""
    args = ["aks", "get-credentials", "--resource-group", resource_group, "--name", name, "--overwrite-existing"]
    if admin:
        args.append("--admin")
    _az(*args)


def assign_role(assignee: str, role: str, scope: str) -> None:
    _az("role", "assignment", "create", "--assignee", assignee, "--role", role, "--scope", scope, "-o", "none")


def create_service_principal(name: str, *, role: str, scope: str) -> ServicePrincipal:
    """Create a service principal and return its credentials.

    The JSON output contains the password, so it is never echoed.

    Raises:
        CommandError: If `az ad sp create-for-rbac` fails.
        CapiInstallError: If the output cannot be parsed.

    """
    output = _az("ad", "sp", "create-for-rbac", "--name", name, "--role", role, "--scopes", scope, "--output", "json")
    return ServicePrincipal.from_az_output(output)


def list_app_registrations(prefix: str) -> list[AppRegistration]:
    """Return application registrations whose display name starts with prefix."""
    output = _az(
        "ad", "app", "list",
        "--filter", f"startswith(displayName,'{prefix}')",
        "--query", "[].{displayName:displayName, appId:appId}",
        "-o", "json",
    )  # fmt: skip
    apps = json.loads(output or "[]")
    ic(apps)
    return [AppRegistration(display_name=app["displayName"], app_id=app["appId"]) for app in apps]


def delete_app_registration(app: AppRegistration) -> bool:
    """Delete an application's service principal or registration.

    Tries the service principal first, then the app registration by app id,
    then by object id for CLI versions that require it.

    Returns:
        True if any of the attempts succeeded.

    """
    console.debug(f"Attempting to delete service principal {app.app_id}...")
    if shell.succeeds(["az", "ad", "sp", "delete", "--id", app.app_id]):
        console.success(f"Service principal {escape(app.display_name)} deleted")
        return True

    console.warning("Failed to delete service principal directly. Trying to delete the app registration...")
    if shell.succeeds(["az", "ad", "app", "delete", "--id", app.app_id]):
        console.success(f"App registration {escape(app.display_name)} deleted")
        return True

    console.warning("Standard deletion failed. Trying with the application object id...")
    result = shell.run(["az", "ad", "app", "show", "--id", app.app_id, "--query", "id", "-o", "tsv"], check=False)
    object_id = result.stdout.strip() if result.returncode == 0 else ""
    if not object_id:
        console.error(f"Failed to get object id for app {app.app_id}. Manual cleanup required.")
        return False

    if shell.succeeds(["az", "ad", "app", "delete", "--id", object_id]):
        console.success(f"App registration {escape(app.display_name)} deleted using object id")
        return True

    console.error(
        f"Failed to delete {escape(app.display_name)} (AppID: {app.app_id}). You may need to delete it manually."
    )
    return False
