"""Custom exceptions for aks-capi-bootstrap.

This module defines the exception hierarchy used throughout the application.
Every exception here is fatal: it aborts the remaining steps of a run.
Soft failures (readiness timeouts) are logged as warnings and never raised.
"""


class BootstrapError(Exception):
    """Base exception for all aks-capi-bootstrap errors.

    All custom exceptions in this package inherit from this class,
    allowing the CLI to catch every fatal failure with a single
    except clause and turn it into a non-zero exit.
    """

    pass


class CommandError(BootstrapError):
    """Raised when an external command exits with a non-zero status.

    Attributes:
        cmd: The argv that was executed (secrets already redacted).
        returncode: The process exit status (127 if the binary is missing).
        stderr: Captured standard error, stripped.

    """

    def __init__(self, cmd: list[str], returncode: int, stderr: str = "") -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        details = f": {stderr}" if stderr else ""
        super().__init__(f"'{' '.join(cmd)}' exited with status {returncode}{details}")


class ToolVerificationError(BootstrapError):
    """Raised when a required CLI tool is missing or too old.

    This can occur when:
    - The binary is not installed or not on PATH
    - The installed version is lower than the supported minimum
    """

    pass


class ConfigurationError(BootstrapError):
    """Raised when a required setting is still empty after prompting."""

    pass


class ClusterAccessError(BootstrapError):
    """Raised when the management cluster API stays unreachable.

    This happens only after the single escalate-and-retry attempt:
    granting the cluster admin role and re-fetching credentials.
    """

    pass


class CapiInstallError(BootstrapError):
    """Raised when Cluster API installation cannot be completed.

    This can occur when:
    - The service principal output cannot be parsed
    - The AzureClusterIdentity cannot be read back after submission
    """

    pass


class GitOpsError(BootstrapError):
    """Raised when FluxCD prerequisites or bootstrap fail."""

    pass


class BackstageError(BootstrapError):
    """Raised when the Backstage installation cannot be completed.

    This can occur when:
    - Scaffolding or dependency installation fails
    - The generated backend entrypoint lacks an expected plugin registration
    """

    pass
