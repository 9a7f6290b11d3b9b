"""Interactive user prompts.

This module provides the questionary prompts used to fill in missing
settings and to confirm destructive cleanup steps.
"""

import re
from collections.abc import Callable

import questionary

from aks_capi_bootstrap import console
from aks_capi_bootstrap.exceptions import ConfigurationError
from aks_capi_bootstrap.styles import DANGER_STYLE, PROMPT_STYLE, QMARK

_UUID_PATTERN = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

# GitHub user and organization names (1-39 chars, alphanumeric or single hyphens)
_GITHUB_OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")

Validator = Callable[[str], bool | str]


def validate_subscription_id(value: str) -> bool | str:
    """Validate an Azure subscription id.

    Empty input is accepted here so that the caller can abort with a
    ConfigurationError naming the field instead of re-prompting forever.

    Args:
        value: The value to validate.

    Returns:
        True if valid or empty, or an error message string if invalid.

    """
    if not value or _UUID_PATTERN.match(value.strip()):
        return True
    return "Subscription ID must be a UUID (xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx)"


def validate_github_owner(value: str) -> bool | str:
    """Validate a GitHub user or organization name. Empty input is accepted."""
    if not value or _GITHUB_OWNER_PATTERN.match(value.strip()):
        return True
    return "GitHub owner may contain only alphanumeric characters or single hyphens"


def require(
    field: str,
    value: str,
    *,
    question: str,
    secret: bool = False,
    validate: Validator | None = None,
) -> str:
    """Return a required setting, prompting for it when empty.

    Args:
        field: Setting name used in error messages (e.g. AZURE_SUBSCRIPTION_ID).
        value: The currently configured value.
        question: Prompt shown when the value is empty.
        secret: Mask the input.
        validate: Extra validation applied to both configured and entered values.

    Returns:
        The non-empty, validated value.

    Raises:
        ConfigurationError: If the value is invalid or still empty after prompting.

    """
    value = value.strip()

    if not value:
        console.warning(f"{field} is not set")
        if secret:
            value = questionary.password(question, style=PROMPT_STYLE, qmark=QMARK).unsafe_ask()
        else:
            value = questionary.text(question, validate=validate or (lambda _: True), style=PROMPT_STYLE, qmark=QMARK).unsafe_ask()
        value = (value or "").strip()

    if not value:
        raise ConfigurationError(f"{field} is not set. Provide it as an option, an environment variable or at the prompt.")

    if validate is not None:
        verdict = validate(value)
        if verdict is not True:
            raise ConfigurationError(f"{field} is invalid: {verdict}")

    return value


def confirm(question: str, *, default: bool) -> bool:
    """Ask a yes/no question.

    Args:
        question: The question to ask.
        default: Answer used when the user just presses Enter.

    Returns:
        The user's answer.

    """
    return bool(
        questionary.confirm(
            question,
            default=default,
            style=DANGER_STYLE,
            qmark=QMARK,
        ).unsafe_ask()
    )
