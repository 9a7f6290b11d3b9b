"""Tests for steps/capi.py module."""

import os
import subprocess
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from aks_capi_bootstrap.exceptions import CapiInstallError, CommandError
from aks_capi_bootstrap.models import ServicePrincipal
from aks_capi_bootstrap.steps import capi

PRINCIPAL = ServicePrincipal(app_id="app-id", password="sp-password", tenant_id="tenant-id")


@pytest.fixture
def clean_environ():
    """Restore os.environ after the installer exports credentials."""
    with patch.dict(os.environ):
        yield os.environ


@pytest.fixture
def mock_sp():
    """Mock service principal creation."""
    with patch("aks_capi_bootstrap.azure.create_service_principal", return_value=PRINCIPAL) as mock:
        yield mock


@pytest.fixture
def mock_run():
    """Mock external commands run by the installer."""
    with patch("aks_capi_bootstrap.shell.run") as mock:
        mock.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        yield mock


class TestServicePrincipalName:
    """Tests for service_principal_name function."""

    def test_dated_name(self):
        """Test the name carries the prefix and date."""
        assert capi.service_principal_name(date(2025, 4, 5)) == "ClusterAPI-Creator-20250405"


class TestInstallClusterApi:
    """Tests for install_cluster_api function."""

    def test_skipped_when_installed(self, settings, mock_cluster, mock_sp, mock_run):
        """Test nothing happens when capi-system exists."""
        mock_cluster.namespace_exists.return_value = True

        assert capi.install_cluster_api(settings, mock_cluster) is False

        mock_sp.assert_not_called()
        mock_run.assert_not_called()
        mock_cluster.apply_secret.assert_not_called()

    def test_secret_and_init_before_identity(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test the secret and clusterctl init both precede the identity."""
        order = MagicMock()
        mock_cluster.apply_secret.side_effect = lambda *a, **kw: order.secret()
        mock_cluster.apply_cluster_identity.side_effect = lambda *a, **kw: order.identity()

        def fake_run(cmd, **kwargs):
            if cmd[0] == "clusterctl":
                order.clusterctl()
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        mock_run.side_effect = fake_run

        assert capi.install_cluster_api(settings, mock_cluster) is True

        names = [call[0] for call in order.mock_calls]
        assert names == ["secret", "clusterctl", "identity"]

    def test_secret_contents(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test the secret holds the service principal password."""
        capi.install_cluster_api(settings, mock_cluster)

        mock_cluster.apply_secret.assert_called_once_with(
            "cluster-identity-secret", "default", {"clientSecret": "sp-password"}
        )
        mock_sp.assert_called_once()
        assert mock_sp.call_args.kwargs == {"role": "Contributor", "scope": settings.subscription_scope}

    def test_credentials_exported(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test clusterctl inherits the credentials through the environment."""
        capi.install_cluster_api(settings, mock_cluster)

        assert clean_environ["AZURE_CLIENT_ID"] == "app-id"
        assert clean_environ["AZURE_CLIENT_SECRET"] == "sp-password"
        assert clean_environ["AZURE_SUBSCRIPTION_ID"] == settings.subscription_id
        assert clean_environ["CLUSTER_IDENTITY_NAME"] == "cluster-identity"

    def test_rendered_identity(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test the submitted identity references the secret and principal."""
        capi.install_cluster_api(settings, mock_cluster)

        manifest = mock_cluster.apply_cluster_identity.call_args[0][0]
        assert manifest["kind"] == "AzureClusterIdentity"
        assert manifest["metadata"] == {
            "name": "cluster-identity",
            "namespace": "default",
            "labels": {"clusterctl.cluster.x-k8s.io/move-hierarchy": "true"},
        }
        assert manifest["spec"]["clientID"] == "app-id"
        assert manifest["spec"]["tenantID"] == "tenant-id"
        assert manifest["spec"]["clientSecret"] == {"name": "cluster-identity-secret", "namespace": "default"}
        assert manifest["spec"]["allowedNamespaces"] == {"list": ["default"]}

    def test_wait_timeout_is_soft(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test a kubectl wait timeout only warns."""

        def fake_run(cmd, **kwargs):
            returncode = 1 if cmd[:2] == ["kubectl", "wait"] else 0
            return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="timed out")

        mock_run.side_effect = fake_run

        with patch("aks_capi_bootstrap.console.warning") as mock_warning:
            assert capi.install_cluster_api(settings, mock_cluster) is True

        assert mock_warning.call_count == 2
        mock_cluster.apply_cluster_identity.assert_called_once()

    def test_clusterctl_failure_is_fatal(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test a failing clusterctl init aborts before the identity."""
        mock_run.side_effect = CommandError(["clusterctl", "init"], 1, "provider not found")

        with pytest.raises(CapiInstallError, match="provider not found"):
            capi.install_cluster_api(settings, mock_cluster)

        mock_cluster.apply_cluster_identity.assert_not_called()

    def test_identity_not_read_back(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test a missing identity after submission is fatal."""
        mock_cluster.get_cluster_identity.return_value = None

        with pytest.raises(CapiInstallError, match="AzureClusterIdentity"):
            capi.install_cluster_api(settings, mock_cluster)

    def test_secret_api_error(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test a rejected secret is fatal and stops before clusterctl."""
        mock_cluster.apply_secret.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(CapiInstallError, match="Forbidden"):
            capi.install_cluster_api(settings, mock_cluster)

        mock_run.assert_not_called()

    def test_pod_listing_failure_is_soft(self, settings, mock_cluster, mock_sp, mock_run, clean_environ):
        """Test the closing pod listing cannot fail an otherwise complete install."""
        mock_cluster.list_pod_names.side_effect = ApiException(status=500, reason="Internal Server Error")

        assert capi.install_cluster_api(settings, mock_cluster) is True
        mock_cluster.apply_cluster_identity.assert_called_once()
