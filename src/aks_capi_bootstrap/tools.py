"""Verification of the external CLI tools a run depends on.

Each tool must be on PATH. When its version can be read it must be at least
the supported minimum; when it cannot, the run continues with a warning.
"""

import re
import shutil
import subprocess

from icecream import ic

from aks_capi_bootstrap import console
from aks_capi_bootstrap.exceptions import ToolVerificationError
from aks_capi_bootstrap.models import ToolRequirement

# First dotted triple anywhere in the probe output
_VERSION_PATTERN = re.compile(r"\d+\.\d+\.\d+")
_LEADING_DIGITS = re.compile(r"\d+")

DEFAULT_REQUIREMENTS: tuple[ToolRequirement, ...] = (
    ToolRequirement("az", ("az", "--version"), "2.50.0"),
    ToolRequirement("kubectl", ("kubectl", "version", "--client"), "1.25.0"),
    ToolRequirement("flux", ("flux", "--version"), "2.1.0"),
    ToolRequirement("clusterctl", ("clusterctl", "version"), "1.5.0"),
    ToolRequirement("helm", ("helm", "version"), "3.13.0"),
)

BACKSTAGE_REQUIREMENTS: tuple[ToolRequirement, ...] = (
    ToolRequirement("node", ("node", "--version"), "18.0.0"),
    ToolRequirement("yarn", ("yarn", "--version"), "1.22.0"),
)


def requirements_for(*, with_backstage: bool) -> tuple[ToolRequirement, ...]:
    """Return the tool requirements for a run."""
    if with_backstage:
        return DEFAULT_REQUIREMENTS + BACKSTAGE_REQUIREMENTS
    return DEFAULT_REQUIREMENTS


def parse_version(version: str) -> tuple[int, int, int]:
    """Convert a version string into a comparable numeric triple.

    A leading 'v' is ignored, suffixes such as '-rc.1' are dropped and
    missing fields count as zero, so '1.6' compares as (1, 6, 0).

    Args:
        version: Version string such as 'v1.30.2' or '2.50.0'.

    Returns:
        The (major, minor, patch) tuple.

    Raises:
        ValueError: If the string does not start with a number.

    """
    fields: list[int] = []
    for part in version.strip().lstrip("vV").split(".")[:3]:
        match = _LEADING_DIGITS.match(part)
        if match is None:
            break
        fields.append(int(match.group()))

    if not fields:
        raise ValueError(f"Invalid version string: {version!r}")

    while len(fields) < 3:
        fields.append(0)
    return fields[0], fields[1], fields[2]


def find_version(output: str) -> str | None:
    """Return the first dotted-triple version token in probe output."""
    match = _VERSION_PATTERN.search(output)
    return match.group() if match else None


def is_supported(installed: str, minimum: str) -> bool:
    """Return True if installed >= minimum, comparing numerically."""
    return parse_version(installed) >= parse_version(minimum)


def _probe_output(requirement: ToolRequirement) -> str:
    try:
        result = subprocess.run(
            list(requirement.probe),
            capture_output=True,
            text=True,
            check=False,
            timeout=60,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        ic(e)
        return ""
    return f"{result.stdout}\n{result.stderr}"


def verify(requirement: ToolRequirement) -> bool:
    """Check that a tool is installed and new enough.

    Args:
        requirement: The tool to check.

    Returns:
        False if the binary is missing or older than the minimum,
        True otherwise (including when the version cannot be determined).

    """
    console.debug(f"Checking for {requirement.name}...")

    if shutil.which(requirement.name) is None:
        console.error(f"{requirement.name} not found. Please install {requirement.name} first.")
        return False

    installed = find_version(_probe_output(requirement))
    ic(requirement.name, installed)

    if installed is None:
        console.warning(f"Could not determine {requirement.name} version. Continuing anyway.")
        return True

    if is_supported(installed, requirement.min_version):
        console.success(
            f"{requirement.name} version {installed} meets minimum requirement ({requirement.min_version})"
        )
        return True

    console.error(
        f"{requirement.name} version {installed} is older than required version {requirement.min_version}"
    )
    return False


def verify_all(requirements: tuple[ToolRequirement, ...]) -> None:
    """Verify every requirement, reporting all failures at once.

    Raises:
        ToolVerificationError: If any tool is missing or too old.

    """
    failed = [requirement.name for requirement in requirements if not verify(requirement)]
    if failed:
        raise ToolVerificationError(f"Missing or outdated tools: {', '.join(failed)}")
