"""External command execution.

Every call to az, kubectl, flux, clusterctl, yarn or npx goes through run()
so that failures surface uniformly as CommandError and secrets never reach
the log or an exception message.
"""

import os
import subprocess
from collections.abc import Iterable, Mapping
from pathlib import Path

from icecream import ic

from aks_capi_bootstrap.exceptions import CommandError

_REDACTED = "***"


def redact(text: str, secrets: Iterable[str]) -> str:
    """Replace every occurrence of each non-empty secret with a mask.

    Args:
        text: Text that may contain secrets.
        secrets: Values to mask.

    Returns:
        The masked text.

    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, _REDACTED)
    return text


def run(
    cmd: list[str],
    *,
    check: bool = True,
    capture: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    input_text: str | None = None,
    secrets: Iterable[str] = (),
) -> subprocess.CompletedProcess[str]:
    """Run an external command and wait for it to finish.

    Args:
        cmd: The argv to execute.
        check: Raise CommandError on a non-zero exit status.
        capture: Capture stdout/stderr instead of streaming them to the terminal.
        env: Extra environment variables layered over os.environ.
        cwd: Working directory for the command.
        input_text: Text passed on stdin.
        secrets: Values masked in debug output and error messages.

    Returns:
        The completed process.

    Raises:
        CommandError: If the binary is missing, or if check is set and the
            command exits with a non-zero status.

    """
    secrets = tuple(secrets)
    shown = [redact(arg, secrets) for arg in cmd]
    ic(shown)

    try:
        result = subprocess.run(
            cmd,
            input=input_text,
            capture_output=capture,
            text=True,
            env={**os.environ, **env} if env else None,
            cwd=cwd,
            check=False,
        )
    except FileNotFoundError as err:
        raise CommandError(shown, 127, f"{cmd[0]} not found on PATH") from err

    if check and result.returncode != 0:
        stderr = redact((result.stderr or "").strip(), secrets)
        raise CommandError(shown, result.returncode, stderr)

    return result


def succeeds(cmd: list[str], **kwargs: object) -> bool:
    """Return True if the command exits with status 0.

    Used for existence probes such as `az aks show`, where a failure
    means "absent" rather than an error.
    """
    try:
        return run(cmd, check=False, **kwargs).returncode == 0  # type: ignore[arg-type]
    except CommandError:
        return False
