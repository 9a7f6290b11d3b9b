"""Tests for steps/cleanup.py module."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from aks_capi_bootstrap.exceptions import ClusterAccessError, CommandError
from aks_capi_bootstrap.models import AppRegistration, CapiCluster
from aks_capi_bootstrap.steps import cleanup

APPS = [AppRegistration("ClusterAPI-Creator-20250405", "app-1"), AppRegistration("ClusterAPI-Creator-20250406", "app-2")]


@pytest.fixture
def mock_azure():
    """Mock the Azure CLI wrapper used by the cleanup steps."""
    with patch("aks_capi_bootstrap.steps.cleanup.azure") as mock:
        mock.aks_cluster_exists.return_value = True
        mock.resource_group_exists.return_value = True
        mock.list_app_registrations.side_effect = [APPS, []]
        mock.delete_app_registration.return_value = True
        yield mock


@pytest.fixture
def mock_session():
    """Mock Azure login and subscription selection."""
    with patch("aks_capi_bootstrap.steps.cleanup.ensure_azure_session") as mock:
        yield mock


@pytest.fixture
def mock_stop_servers():
    """Mock the dev server kill."""
    with patch("aks_capi_bootstrap.steps.cleanup.stop_stray_dev_servers") as mock:
        yield mock


class TestRunCleanup:
    """Tests for run_cleanup function."""

    def test_cancel_at_first_prompt(self, settings, mock_cluster, mock_azure, mock_session, mock_confirm):
        """Test declining the global confirmation does nothing."""
        mock_confirm.return_value = False

        assert cleanup.run_cleanup(settings, mock_cluster) is False

        mock_session.assert_not_called()
        mock_azure.delete_resource_group.assert_not_called()

    def test_declined_group_still_runs_later_steps(
        self, settings, mock_cluster, mock_azure, mock_session, mock_confirm, mock_stop_servers, no_sleep
    ):
        """Test declining resource group deletion continues with principals and Backstage."""
        settings.backstage_dir.mkdir()
        # continue, delete whole cluster, resource group, principals, backstage
        mock_confirm.side_effect = [True, True, False, True, True]

        assert cleanup.run_cleanup(settings, mock_cluster) is True

        mock_azure.delete_resource_group.assert_not_called()
        assert mock_azure.delete_app_registration.call_count == 2
        assert not settings.backstage_dir.exists()
        mock_stop_servers.assert_called_once_with(settings.backstage_dir)

    def test_whole_cluster_question_asked_once(
        self, settings, mock_cluster, mock_azure, mock_session, mock_confirm, mock_stop_servers, no_sleep
    ):
        """Test the delete-entire-cluster answer skips CAPI clusters and is not asked again."""
        mock_confirm.side_effect = [True, True, True, True]

        cleanup.run_cleanup(settings, mock_cluster)

        questions = [call.args[0] for call in mock_confirm.call_args_list]
        assert sum("entire management cluster" in question for question in questions) == 1
        mock_cluster.list_capi_clusters.assert_not_called()
        mock_azure.delete_resource_group.assert_called_once_with(settings.resource_group)

    def test_capi_clusters_deleted_when_keeping_management_cluster(
        self, settings, mock_cluster, mock_azure, mock_session, mock_confirm, no_sleep
    ):
        """Test child clusters are deleted and a failure only warns."""
        clusters = [CapiCluster("default", "dev"), CapiCluster("team-a", "prod")]
        mock_cluster.list_capi_clusters.side_effect = [clusters, []]
        mock_cluster.delete_capi_cluster.side_effect = [ApiException(status=500, reason="boom"), None]
        # continue, keep cluster, delete CAPI clusters, resource group, principals
        mock_confirm.side_effect = [True, False, True, False, False]

        with patch("aks_capi_bootstrap.console.warning") as mock_warning:
            assert cleanup.run_cleanup(settings, mock_cluster) is True

        assert mock_cluster.delete_capi_cluster.call_count == 2
        assert any("dev" in call.args[0] for call in mock_warning.call_args_list)
        mock_azure.get_credentials.assert_called_once_with(settings.resource_group, settings.cluster_name)

    def test_no_management_cluster(self, settings, mock_cluster, mock_azure, mock_session, mock_confirm, no_sleep):
        """Test CAPI cleanup is skipped without asking when AKS is gone."""
        mock_azure.aks_cluster_exists.return_value = False
        mock_azure.resource_group_exists.return_value = False
        mock_confirm.side_effect = [True, False]

        cleanup.run_cleanup(settings, mock_cluster)

        questions = [call.args[0] for call in mock_confirm.call_args_list]
        assert not any("entire management cluster" in question for question in questions)
        mock_cluster.list_capi_clusters.assert_not_called()

    def test_group_delete_failure_continues(
        self, settings, mock_cluster, mock_azure, mock_session, mock_confirm, no_sleep
    ):
        """Test a failed resource group deletion logs an error and continues."""
        mock_azure.delete_resource_group.side_effect = CommandError(["az", "group", "delete"], 1, "locked")
        mock_confirm.side_effect = [True, True, True, True]

        with patch("aks_capi_bootstrap.console.error") as mock_error:
            assert cleanup.run_cleanup(settings, mock_cluster) is True

        mock_error.assert_called_once()
        assert mock_azure.delete_app_registration.call_count == 2

    def test_resource_group_waits_for_capi_deletions(
        self, settings, mock_cluster, mock_azure, mock_session, mock_confirm, no_sleep
    ):
        """Test child clusters are gone before the resource group is deleted."""
        order = MagicMock()
        order.attach_mock(mock_cluster.list_capi_clusters, "list_capi_clusters")
        order.attach_mock(mock_azure.delete_resource_group, "delete_resource_group")
        dev = CapiCluster("default", "dev")
        mock_cluster.list_capi_clusters.side_effect = [[dev], [dev], []]
        # continue, keep cluster, delete CAPI clusters, resource group, principals
        mock_confirm.side_effect = [True, False, True, True, False]

        cleanup.run_cleanup(settings, mock_cluster)

        assert [call[0] for call in order.mock_calls] == [
            "list_capi_clusters",
            "list_capi_clusters",
            "list_capi_clusters",
            "delete_resource_group",
        ]


class TestWaitForCapiDeletions:
    """Tests for wait_for_capi_deletions function."""

    def test_deleted(self, mock_cluster, no_sleep):
        """Test the wait ends once the clusters disappear."""
        dev = CapiCluster("default", "dev")
        other = CapiCluster("team-a", "other")
        mock_cluster.list_capi_clusters.side_effect = [[dev, other], [other]]

        assert cleanup.wait_for_capi_deletions(mock_cluster, [dev], timeout=30, interval=10) is True
        assert mock_cluster.list_capi_clusters.call_count == 2

    def test_timeout_only_warns(self, mock_cluster, no_sleep):
        """Test clusters still present after the window are reported."""
        dev = CapiCluster("default", "dev")
        mock_cluster.list_capi_clusters.return_value = [dev]

        with patch("aks_capi_bootstrap.console.warning") as mock_warning:
            assert cleanup.wait_for_capi_deletions(mock_cluster, [dev], timeout=30, interval=10) is False

        assert mock_cluster.list_capi_clusters.call_count == 3
        mock_warning.assert_called_once()
        no_sleep.assert_called_with(10)

    def test_lost_access_only_warns(self, mock_cluster, no_sleep):
        """Test a listing failure ends the wait with a warning."""
        mock_cluster.list_capi_clusters.side_effect = ClusterAccessError("Failed to connect to the Kubernetes cluster")

        with patch("aks_capi_bootstrap.console.warning") as mock_warning:
            assert cleanup.wait_for_capi_deletions(mock_cluster, [CapiCluster("default", "dev")]) is False

        assert "Failed to connect" in mock_warning.call_args.args[0]

class TestDeleteServicePrincipals:
    """Tests for delete_service_principals function."""

    def test_residue_reported(self, mock_azure, mock_confirm, no_sleep):
        """Test leftovers are listed with manual delete commands."""
        mock_azure.list_app_registrations.side_effect = [APPS, APPS[1:]]

        with patch("aks_capi_bootstrap.console.warning") as mock_warning:
            assert cleanup.delete_service_principals() == 1

        messages = [call.args[0] for call in mock_warning.call_args_list]
        assert "az ad app delete --id app-2" in messages
        mock_azure.list_app_registrations.assert_called_with("ClusterAPI")

    def test_none_found(self, mock_azure, mock_confirm):
        """Test nothing is asked when no principals exist."""
        mock_azure.list_app_registrations.side_effect = [[]]

        assert cleanup.delete_service_principals() == 0
        mock_confirm.assert_not_called()
