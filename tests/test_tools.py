"""Tests for tools.py module."""

from unittest.mock import patch

import pytest

from aks_capi_bootstrap import tools
from aks_capi_bootstrap.exceptions import ToolVerificationError
from aks_capi_bootstrap.models import ToolRequirement

AZ = ToolRequirement("az", ("az", "--version"), "2.50.0")


class TestParseVersion:
    """Tests for parse_version function."""

    @pytest.mark.parametrize(
        ("version", "expected"),
        [
            ("2.50.0", (2, 50, 0)),
            ("v1.30.2", (1, 30, 2)),
            ("1.6", (1, 6, 0)),
            ("18", (18, 0, 0)),
            ("1.5.0-rc.1", (1, 5, 0)),
            ("3.13.2+g1234abc", (3, 13, 2)),
        ],
    )
    def test_parse_version(self, version, expected):
        """Test prefixes, suffixes and missing fields."""
        assert tools.parse_version(version) == expected

    def test_parse_version_invalid(self):
        """Test a string without a leading number raises ValueError."""
        with pytest.raises(ValueError, match="Invalid version string"):
            tools.parse_version("unknown")


class TestFindVersion:
    """Tests for find_version function."""

    def test_finds_first_triple(self):
        """Test the first dotted triple is returned."""
        output = 'azure-cli                         2.61.0\ncore                              2.61.0 *'
        assert tools.find_version(output) == "2.61.0"

    def test_kubectl_client_output(self):
        """Test kubectl's v-prefixed output."""
        assert tools.find_version("Client Version: v1.30.2\nKustomize Version: v5.0.4") == "1.30.2"

    def test_no_version(self):
        """Test output without a triple returns None."""
        assert tools.find_version("command not understood") is None


class TestIsSupported:
    """Tests for is_supported function."""

    def test_boundary_is_inclusive(self):
        """Test the minimum itself is accepted."""
        assert tools.is_supported("2.50.0", "2.50.0")

    def test_lower_version_fails(self):
        """Test a version just below the minimum is rejected."""
        assert not tools.is_supported("2.49.0", "2.50.0")

    def test_numeric_not_lexical(self):
        """Test double-digit components compare numerically."""
        assert tools.is_supported("1.10.0", "1.9.0")
        assert not tools.is_supported("1.9.9", "1.10.0")

    def test_short_versions_padded(self):
        """Test 1.6 compares as 1.6.0."""
        assert tools.is_supported("1.6", "1.6.0")


class TestVerify:
    """Tests for verify function."""

    def test_missing_binary(self):
        """Test a binary not on PATH fails."""
        with patch("shutil.which", return_value=None):
            assert tools.verify(AZ) is False

    def test_supported_version(self):
        """Test a new enough binary passes."""
        with (
            patch("shutil.which", return_value="/usr/bin/az"),
            patch("aks_capi_bootstrap.tools._probe_output", return_value="azure-cli 2.61.0"),
        ):
            assert tools.verify(AZ) is True

    def test_outdated_version(self):
        """Test an old binary fails."""
        with (
            patch("shutil.which", return_value="/usr/bin/az"),
            patch("aks_capi_bootstrap.tools._probe_output", return_value="azure-cli 2.49.0"),
        ):
            assert tools.verify(AZ) is False

    def test_unparsable_version_warns_and_passes(self):
        """Test an unreadable version is accepted with a warning."""
        with (
            patch("shutil.which", return_value="/usr/bin/az"),
            patch("aks_capi_bootstrap.tools._probe_output", return_value="something unexpected"),
            patch("aks_capi_bootstrap.console.warning") as mock_warning,
        ):
            assert tools.verify(AZ) is True
            mock_warning.assert_called_once()

    def test_probe_failure_passes(self, mock_subprocess):
        """Test a probe that cannot run is treated as an unknown version."""
        mock_subprocess.side_effect = OSError("exec format error")
        with patch("shutil.which", return_value="/usr/bin/az"):
            assert tools.verify(AZ) is True


class TestVerifyAll:
    """Tests for verify_all function."""

    def test_names_every_failing_tool(self):
        """Test all failures are reported together."""
        requirements = (
            AZ,
            ToolRequirement("flux", ("flux", "--version"), "2.1.0"),
            ToolRequirement("helm", ("helm", "version"), "3.13.0"),
        )
        with patch("aks_capi_bootstrap.tools.verify", side_effect=[False, True, False]):
            with pytest.raises(ToolVerificationError, match="az, helm"):
                tools.verify_all(requirements)

    def test_all_pass(self):
        """Test no exception when every tool passes."""
        with patch("aks_capi_bootstrap.tools.verify", return_value=True):
            tools.verify_all(tools.DEFAULT_REQUIREMENTS)

    def test_backstage_requirements(self):
        """Test node and yarn are only required with Backstage."""
        names = [requirement.name for requirement in tools.requirements_for(with_backstage=True)]
        assert names[-2:] == ["node", "yarn"]
        assert "node" not in [requirement.name for requirement in tools.requirements_for(with_backstage=False)]
