"""Shared test fixtures for aks-capi-bootstrap tests."""

from unittest.mock import MagicMock, patch

import pytest

from aks_capi_bootstrap import console
from aks_capi_bootstrap.cluster import ManagementCluster
from aks_capi_bootstrap.models import LogLevel, Settings

SUBSCRIPTION_ID = "00000000-1111-2222-3333-444444444444"
GITHUB_TOKEN = "ghp_test_token_value"


@pytest.fixture
def settings(tmp_path):
    """Fully resolved settings with the Backstage app under tmp_path."""
    return Settings(
        subscription_id=SUBSCRIPTION_ID,
        location="westeurope",
        github_org="my-org",
        github_repo="fleet",
        github_token=GITHUB_TOKEN,
        backstage_dir=tmp_path / "backstage",
    )


@pytest.fixture
def mock_cluster():
    """ManagementCluster double with nothing installed yet."""
    cluster = MagicMock(spec=ManagementCluster)
    cluster.namespace_exists.return_value = False
    cluster.can_list_nodes.return_value = True
    cluster.get_cluster_identity.return_value = {"metadata": {"name": "cluster-identity"}}
    cluster.list_pod_names.return_value = []
    return cluster


@pytest.fixture
def mock_kube_config():
    """Mock kubernetes config loading."""
    with patch("kubernetes.config.load_kube_config") as mock:
        yield mock


@pytest.fixture
def mock_core_v1_api():
    """Mock CoreV1Api."""
    with patch("kubernetes.client.CoreV1Api") as mock:
        api_instance = MagicMock()
        mock.return_value = api_instance
        yield api_instance


@pytest.fixture
def mock_custom_objects_api():
    """Mock CustomObjectsApi."""
    with patch("kubernetes.client.CustomObjectsApi") as mock:
        api_instance = MagicMock()
        mock.return_value = api_instance
        yield api_instance


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for command execution."""
    with patch("subprocess.run") as mock:
        mock.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock


@pytest.fixture
def mock_confirm():
    """Mock the yes/no prompt; set side_effect or return_value per test."""
    with patch("aks_capi_bootstrap.prompts.confirm") as mock:
        mock.return_value = True
        yield mock


@pytest.fixture
def no_sleep():
    """Skip propagation and restart delays."""
    with patch("time.sleep") as mock:
        yield mock


@pytest.fixture(autouse=True)
def console_threshold(monkeypatch):
    """Run every test at the INFO threshold regardless of earlier configure() calls."""
    monkeypatch.setattr(console, "_threshold", LogLevel.INFO)
