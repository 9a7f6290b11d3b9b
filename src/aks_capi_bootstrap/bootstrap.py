"""Top-level flows behind the CLI commands.

run_setup() drives the whole provisioning sequence, run_check() only the
tool verification and run_cleanup_flow() the interactive teardown. Every
stage runs inside _step() so that a fatal error is reported with the name
of the stage it came from.
"""

from collections.abc import Generator
from contextlib import contextmanager

from icecream import ic

from aks_capi_bootstrap import console, tools
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.models import Settings
from aks_capi_bootstrap.resolve import resolve_kubernetes_version, resolve_settings
from aks_capi_bootstrap.steps import (
    bootstrap_flux,
    configure_github_plugins,
    ensure_azure_session,
    install_backstage,
    install_cluster_api,
    launch_dev_server,
    provision_management_cluster,
    run_cleanup,
)


@contextmanager
def _step(name: str) -> Generator[None, None, None]:
    console.newline()
    console.info(f"[bold]{name}[/bold]")
    try:
        yield
    except Exception:
        console.error(f"Step '{name}' failed")
        raise


def run_check(*, with_backstage: bool = False) -> None:
    """Verify that every required CLI tool is installed and recent enough.

    Raises:
        ToolVerificationError: If any tool is missing or too old.

    """
    with _step("Tool verification"):
        tools.verify_all(tools.requirements_for(with_backstage=with_backstage))
    console.success("All required tools are installed.")


def run_setup(settings: Settings, *, with_backstage: bool = False) -> Settings:
    """Provision the management cluster, Cluster API and Flux.

    Args:
        settings: Settings built from options and environment variables.
        with_backstage: Also install Backstage and start its dev server.

    Returns:
        The fully resolved settings the run used.

    Raises:
        BootstrapError: On the first fatal failure.

    """
    console.banner("AKS Cluster API management cluster setup")

    with _step("Configuration"):
        settings = resolve_settings(settings, need_github=True)
    ic(settings)

    run_check(with_backstage=with_backstage)

    with _step("Azure session"):
        ensure_azure_session(settings)
        settings = resolve_kubernetes_version(settings)

    cluster = ManagementCluster()
    with _step("Management cluster"):
        provision_management_cluster(settings, cluster)

    with _step("Cluster API"):
        install_cluster_api(settings, cluster)

    with _step("FluxCD"):
        bootstrap_flux(settings, cluster)

    backstage_url = ""
    if with_backstage:
        with _step("Backstage"):
            install_backstage(settings)
            configure_github_plugins(settings.backstage_dir)
            backstage_url = launch_dev_server(settings).url

    _print_summary(settings, backstage_url=backstage_url)
    return settings


def run_cleanup_flow(settings: Settings) -> bool:
    """Resolve the subscription and run the interactive teardown.

    Returns:
        False if the user cancelled at the first confirmation.

    """
    console.banner("AKS Cluster API cleanup")

    with _step("Configuration"):
        settings = resolve_settings(settings, need_github=False)

    with _step("Cleanup"):
        return run_cleanup(settings, ManagementCluster())


def _print_summary(settings: Settings, *, backstage_url: str) -> None:
    items = {
        "Subscription": settings.subscription_id,
        "Resource group": settings.resource_group,
        "Management cluster": settings.cluster_name,
        "Kubernetes version": settings.kubernetes_version,
        "GitOps repository": f"https://github.com/{settings.github_org}/{settings.github_repo}",
    }
    if backstage_url:
        items["Backstage"] = backstage_url
    log_file = console.log_file()
    if log_file is not None:
        items["Log file"] = str(log_file)

    console.newline()
    console.summary_panel("Setup complete", items)
    console.info("Next steps:")
    console.step("kubectl get pods -n capz-system")
    console.step("flux get kustomizations -A")
    console.step(f"Commit cluster manifests under clusters/ in {settings.github_org}/{settings.github_repo}")
