"""Resolution of the run's settings.

Fills required settings from prompts before any external call is made,
and later substitutes the region's default AKS version for "auto".
"""

from aks_capi_bootstrap import azure, console, prompts
from aks_capi_bootstrap.models import AUTO_VERSION, Settings


def resolve_settings(settings: Settings, *, need_github: bool = True) -> Settings:
    """Return settings with every required field filled in.

    Args:
        settings: Settings built from options, environment and defaults.
        need_github: Also require the GitHub owner and token (setup only).

    Returns:
        A new Settings instance.

    Raises:
        ConfigurationError: If a required field is still empty or invalid.

    """
    console.info("Verifying configuration values...")

    changes: dict[str, str] = {
        "subscription_id": prompts.require(
            "AZURE_SUBSCRIPTION_ID",
            settings.subscription_id,
            question="Enter your Azure Subscription ID:",
            validate=prompts.validate_subscription_id,
        ),
    }

    if need_github:
        changes["github_org"] = prompts.require(
            "GITHUB_ORG",
            settings.github_org,
            question="Enter your GitHub Organization/Username:",
            validate=prompts.validate_github_owner,
        )
        changes["github_token"] = prompts.require(
            "GITHUB_TOKEN",
            settings.github_token,
            question="Enter your GitHub token:",
            secret=True,
        )

    return settings.with_overrides(**changes)


def resolve_kubernetes_version(settings: Settings) -> Settings:
    """Replace an "auto" Kubernetes version with the region's default.

    Falls back to the configured literal, with a warning, when Azure
    does not report a default.

    Args:
        settings: Settings whose kubernetes_version may be "auto".

    Returns:
        Settings with a concrete version, or the same settings unchanged.

    """
    if settings.kubernetes_version != AUTO_VERSION:
        return settings

    console.info(f"Discovering default supported AKS version in {settings.location}...")
    detected = azure.default_kubernetes_version(settings.location)

    if not detected:
        console.warning(
            f"Could not detect default AKS version; continuing with configured version {settings.kubernetes_version}"
        )
        return settings

    console.success(f"Using detected AKS version: {console.highlight(detected)}")
    return settings.with_overrides(kubernetes_version=detected)
