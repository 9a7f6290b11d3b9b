"""Data models for aks-capi-bootstrap.

This module provides the immutable settings record threaded through every
step, along with the small value types exchanged between steps.
"""

import json
from dataclasses import dataclass, field, replace
from enum import IntEnum
from pathlib import Path
from typing import NamedTuple

from aks_capi_bootstrap.exceptions import CapiInstallError

DEFAULT_LOCATION = "eastus"
DEFAULT_CLUSTER_NAME = "mgmt-capi-cluster"
DEFAULT_KUBERNETES_VERSION = "1.32.3"
DEFAULT_GITHUB_REPO = "azure-cluster-api"
DEFAULT_BACKSTAGE_DIRNAME = "backstage"

# Sentinel accepted for --kubernetes-version
AUTO_VERSION = "auto"

# Display name prefix shared by every service principal this tool creates
SP_NAME_PREFIX = "ClusterAPI"


class LogLevel(IntEnum):
    """Log levels in their fixed total order."""

    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40

    @classmethod
    def parse(cls, value: str) -> "LogLevel":
        """Parse a level name, accepting WARNING as an alias for WARN.

        Raises:
            ValueError: If the name is not a known level.

        """
        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


class ToolRequirement(NamedTuple):
    """A CLI tool the run depends on.

    Attributes:
        name: Binary name looked up on PATH.
        probe: Command whose output carries the installed version.
        min_version: Lowest supported version (inclusive).

    """

    name: str
    probe: tuple[str, ...]
    min_version: str


class CapiCluster(NamedTuple):
    """A CAPI-managed workload cluster living on the management cluster."""

    namespace: str
    name: str


class AppRegistration(NamedTuple):
    """An Entra ID application registration found during cleanup."""

    display_name: str
    app_id: str


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved configuration for a single run.

    Instances are immutable; use with_overrides() to derive a copy.

    Attributes:
        subscription_id: Azure subscription to deploy into.
        location: Azure region.
        resource_group: Resource group holding the management cluster.
        cluster_name: AKS management cluster name.
        kubernetes_version: Version literal, or "auto" before resolution.
        aad_admin_group_id: Entra group granted cluster admin; empty means
            the signed-in user.
        github_org: GitHub owner for the Flux repository.
        github_repo: GitHub repository Flux bootstraps into.
        github_token: GitHub personal access token.
        backstage_dir: Directory the Backstage app is scaffolded into.
        log_level: Threshold for console and file logging.

    """

    subscription_id: str = ""
    location: str = DEFAULT_LOCATION
    resource_group: str = ""
    cluster_name: str = DEFAULT_CLUSTER_NAME
    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    aad_admin_group_id: str = ""
    github_org: str = ""
    github_repo: str = DEFAULT_GITHUB_REPO
    github_token: str = field(default="", repr=False)
    backstage_dir: Path = field(default_factory=lambda: Path.cwd() / DEFAULT_BACKSTAGE_DIRNAME)
    log_level: LogLevel = LogLevel.INFO

    def __post_init__(self) -> None:
        if not self.resource_group:
            object.__setattr__(self, "resource_group", f"rg-mgmt-aks-{self.location}")

    def with_overrides(self, **changes: object) -> "Settings":
        """Return a copy of the settings with the given fields replaced."""
        return replace(self, **changes)

    @property
    def subscription_scope(self) -> str:
        """ARM scope of the whole subscription."""
        return f"/subscriptions/{self.subscription_id}"

    @property
    def cluster_resource_id(self) -> str:
        """ARM resource id of the management cluster."""
        return (
            f"{self.subscription_scope}/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.ContainerService/managedClusters/{self.cluster_name}"
        )


@dataclass(frozen=True, slots=True)
class ServicePrincipal:
    """Credentials of the service principal CAPZ authenticates with.

    Held in memory only; the secret reaches the cluster as a Secret object
    and other processes through their environment.
    """

    app_id: str
    password: str = field(repr=False)
    tenant_id: str
    display_name: str = ""

    @classmethod
    def from_az_output(cls, output: str) -> "ServicePrincipal":
        """Build credentials from `az ad sp create-for-rbac --output json`.

        Raises:
            CapiInstallError: If the output is not JSON or lacks a field.

        """
        try:
            data = json.loads(output)
            return cls(
                app_id=data["appId"],
                password=data["password"],
                tenant_id=data["tenant"],
                display_name=data.get("displayName", ""),
            )
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise CapiInstallError(f"Unexpected service principal output: {e}") from e

    def as_environment(self, subscription_id: str) -> dict[str, str]:
        """Environment variables clusterctl and CAPZ templates read."""
        return {
            "AZURE_SUBSCRIPTION_ID": subscription_id,
            "AZURE_TENANT_ID": self.tenant_id,
            "AZURE_CLIENT_ID": self.app_id,
            # CAPZ v1.16 templates still reference this name
            "AZURE_CLIENT_ID_USER_ASSIGNED_IDENTITY": self.app_id,
            "AZURE_CLIENT_SECRET": self.password,
        }


@dataclass(frozen=True, slots=True)
class ClusterIdentity:
    """The AzureClusterIdentity bound to the service principal secret."""

    client_id: str
    tenant_id: str
    name: str = "cluster-identity"
    namespace: str = "default"
    secret_name: str = "cluster-identity-secret"
    secret_namespace: str = "default"
    allowed_namespaces: tuple[str, ...] = ("default",)

    def as_environment(self) -> dict[str, str]:
        """Environment variables the CAPZ cluster templates reference."""
        return {
            "AZURE_CLUSTER_IDENTITY_SECRET_NAME": self.secret_name,
            "AZURE_CLUSTER_IDENTITY_SECRET_NAMESPACE": self.secret_namespace,
            "CLUSTER_IDENTITY_NAME": self.name,
        }
