"""FluxCD GitOps bootstrap against a GitHub repository."""

from aks_capi_bootstrap import console, shell
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.exceptions import CommandError, GitOpsError
from aks_capi_bootstrap.models import Settings

FLUX_NAMESPACE = "flux-system"
FLUX_BRANCH = "main"
FLUX_PATH = "clusters"


def bootstrap_flux(settings: Settings, cluster: ManagementCluster) -> bool:
    """Bootstrap Flux unless the flux-system namespace already exists.

    The token reaches flux through GITHUB_TOKEN in its environment rather
    than on the command line.

    Args:
        settings: Resolved settings with GitHub owner, repo and token.
        cluster: Management cluster client.

    Returns:
        True if Flux was bootstrapped by this call.

    Raises:
        GitOpsError: If the prerequisite check or the bootstrap fails.

    """
    console.info("Checking if FluxCD is already installed...")
    if cluster.namespace_exists(FLUX_NAMESPACE):
        console.info("FluxCD appears to be already installed.")
        return False

    env = {"GITHUB_TOKEN": settings.github_token}
    secrets = (settings.github_token,)

    console.info("Checking FluxCD prerequisites...")
    try:
        shell.run(["flux", "check", "--pre"], env=env, secrets=secrets)
    except CommandError as e:
        raise GitOpsError(f"FluxCD prerequisites not met: {e}") from e

    console.action(f"Bootstrapping FluxCD into {settings.github_org}/{settings.github_repo}...")
    try:
        shell.run(
            [
                "flux", "bootstrap", "github",
                f"--owner={settings.github_org}",
                f"--repository={settings.github_repo}",
                f"--branch={FLUX_BRANCH}",
                f"--path={FLUX_PATH}",
                "--personal",
                "--token-auth",
            ],
            env=env,
            secrets=secrets,
            capture=False,
        )  # fmt: skip
    except CommandError as e:
        raise GitOpsError(f"Failed to bootstrap FluxCD: {e}") from e

    console.success("FluxCD bootstrapped successfully.")
    return True
