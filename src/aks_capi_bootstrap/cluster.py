"""Kubernetes management cluster interaction utilities.

This module provides the ManagementCluster class for the Kubernetes API
calls the setup and cleanup steps make: namespace probes, node access
checks, secret and AzureClusterIdentity submission, and CAPI cluster
listing.
"""

from typing import Any

from icecream import ic
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from aks_capi_bootstrap import console
from aks_capi_bootstrap.exceptions import ClusterAccessError
from aks_capi_bootstrap.models import CapiCluster

CAPZ_GROUP = "infrastructure.cluster.x-k8s.io"
CAPZ_VERSION = "v1beta1"
IDENTITY_PLURAL = "azureclusteridentities"

CAPI_GROUP = "cluster.x-k8s.io"
CAPI_VERSION = "v1beta1"
CLUSTER_PLURAL = "clusters"

_NOT_FOUND = 404
_CONFLICT = 409


def _unreachable(e: MaxRetryError) -> ClusterAccessError:
    return ClusterAccessError(f"Failed to connect to the Kubernetes cluster: {e.reason}")


class ManagementCluster:
    """Kubernetes API access to the management cluster.

    The kubeconfig is read lazily, so an instance can be created before
    `az aks get-credentials` has written it. Call reload() after fetching
    new credentials.

    Attributes:
        context: Kubeconfig context to use; None means the current context.

    """

    def __init__(self, *, context: str | None = None) -> None:
        """Initialize ManagementCluster.

        Args:
            context: Kubeconfig context name. Must be passed as a keyword
                argument.

        """
        self.context: str | None = context
        self._loaded: bool = False

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"ManagementCluster(context={self.context!r}, loaded={self._loaded!r})"

    def reload(self) -> None:
        """(Re)load the kubeconfig.

        Raises:
            ClusterAccessError: If the kubeconfig is missing or invalid.

        """
        try:
            config.load_kube_config(context=self.context)
        except ConfigException as e:
            raise ClusterAccessError(f"Invalid or missing kubeconfig: {e}") from e
        self._loaded = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.reload()

    def can_list_nodes(self) -> bool:
        """Return True if the API server lets us list nodes."""
        self._ensure_loaded()
        try:
            nodes = client.CoreV1Api().list_node().items
        except (ApiException, MaxRetryError) as e:
            ic(e)
            return False

        for node in nodes:
            console.step(f"Node {console.highlight(node.metadata.name)}")
        return True

    def namespace_exists(self, name: str) -> bool:
        """Return True if the namespace exists.

        Raises:
            ClusterAccessError: If the API server cannot be queried.

        """
        self._ensure_loaded()
        try:
            client.CoreV1Api().read_namespace(name)
        except ApiException as e:
            if e.status == _NOT_FOUND:
                return False
            raise ClusterAccessError(f"Failed to read namespace {name}: {e.reason}") from e
        except MaxRetryError as e:
            raise _unreachable(e) from e
        return True

    def list_pod_names(self, namespace: str) -> list[str]:
        """Return the names of the pods in a namespace."""
        self._ensure_loaded()
        try:
            items = client.CoreV1Api().list_namespaced_pod(namespace).items
        except MaxRetryError as e:
            raise _unreachable(e) from e
        pods = [pod.metadata.name for pod in items]
        ic(pods)
        return pods

    def apply_secret(self, name: str, namespace: str, string_data: dict[str, str]) -> None:
        """Create an Opaque secret, replacing it wholesale if it exists.

        Args:
            name: Secret name.
            namespace: Secret namespace.
            string_data: Plain-text keys and values.

        """
        self._ensure_loaded()
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            type="Opaque",
            string_data=string_data,
        )
        api = client.CoreV1Api()
        try:
            try:
                api.create_namespaced_secret(namespace, body)
            except ApiException as e:
                if e.status != _CONFLICT:
                    raise
                api.replace_namespaced_secret(name, namespace, body)
                console.step(f"Replaced existing secret {namespace}/{name}")
        except MaxRetryError as e:
            raise _unreachable(e) from e

    def apply_cluster_identity(self, manifest: dict[str, Any]) -> None:
        """Create an AzureClusterIdentity, replacing it if it exists."""
        self._ensure_loaded()
        api = client.CustomObjectsApi()
        metadata = manifest["metadata"]
        try:
            try:
                api.create_namespaced_custom_object(
                    CAPZ_GROUP, CAPZ_VERSION, metadata["namespace"], IDENTITY_PLURAL, manifest
                )
            except ApiException as e:
                if e.status != _CONFLICT:
                    raise
                current = api.get_namespaced_custom_object(
                    CAPZ_GROUP, CAPZ_VERSION, metadata["namespace"], IDENTITY_PLURAL, metadata["name"]
                )
                manifest["metadata"]["resourceVersion"] = current["metadata"]["resourceVersion"]
                api.replace_namespaced_custom_object(
                    CAPZ_GROUP, CAPZ_VERSION, metadata["namespace"], IDENTITY_PLURAL, metadata["name"], manifest
                )
        except MaxRetryError as e:
            raise _unreachable(e) from e

    def get_cluster_identity(self, name: str, namespace: str) -> dict[str, Any] | None:
        """Read back an AzureClusterIdentity, or None if it does not exist."""
        self._ensure_loaded()
        try:
            return client.CustomObjectsApi().get_namespaced_custom_object(
                CAPZ_GROUP, CAPZ_VERSION, namespace, IDENTITY_PLURAL, name
            )
        except ApiException as e:
            if e.status == _NOT_FOUND:
                return None
            raise
        except MaxRetryError as e:
            raise _unreachable(e) from e

    def list_capi_clusters(self) -> list[CapiCluster]:
        """List CAPI-managed clusters in all namespaces.

        Returns:
            The clusters, or an empty list if the Cluster CRD is not installed.

        """
        self._ensure_loaded()
        try:
            res = client.CustomObjectsApi().list_cluster_custom_object(CAPI_GROUP, CAPI_VERSION, CLUSTER_PLURAL)
        except ApiException as e:
            if e.status == _NOT_FOUND:
                return []
            raise
        except MaxRetryError as e:
            raise _unreachable(e) from e
        clusters = [
            CapiCluster(namespace=item["metadata"]["namespace"], name=item["metadata"]["name"])
            for item in res.get("items", [])
        ]
        ic(clusters)
        return clusters

    def delete_capi_cluster(self, cluster: CapiCluster) -> None:
        """Delete a CAPI cluster; its child resources are cascaded by CAPI."""
        self._ensure_loaded()
        try:
            client.CustomObjectsApi().delete_namespaced_custom_object(
                CAPI_GROUP, CAPI_VERSION, cluster.namespace, CLUSTER_PLURAL, cluster.name
            )
        except MaxRetryError as e:
            raise _unreachable(e) from e
