"""Custom styling for questionary prompts.

This module provides a consistent style for the configuration prompts
and the cleanup confirmations.
"""

from questionary import Style

# ANSI 256 colors for broad terminal compatibility
PROMPT_STYLE = Style(
    [
        ("qmark", "fg:#5fafff bold"),  # Azure blue question mark
        ("question", "bold"),
        ("answer", "fg:#87d7ff bold"),
        ("pointer", "fg:#87d7ff bold"),
        ("highlighted", "fg:#1c1c1c bg:#87d7ff bold"),
        ("selected", "fg:#87d787"),
        ("instruction", "fg:#6c6c6c italic"),
        ("text", ""),
        ("disabled", "fg:#585858 italic"),
    ]
)

# Destructive confirmations get a red question mark
DANGER_STYLE = Style(
    [
        ("qmark", "fg:#ff5f5f bold"),
        ("question", "bold"),
        ("answer", "fg:#ff8787 bold"),
        ("instruction", "fg:#6c6c6c italic"),
    ]
)

# Icon prefix for prompts
QMARK = "? "
