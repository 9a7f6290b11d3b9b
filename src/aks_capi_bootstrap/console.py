"""Rich console utilities and the per-run log.

Every message goes through log(), which filters against a single threshold
and writes the record to the terminal and to a timestamped log file in one
call. The helpers below (info, success, warning, ...) are thin wrappers that
pick a level and an icon.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.errors import MarkupError
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from aks_capi_bootstrap.models import LogLevel

# Custom theme with consistent colors
_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "cyan bold",
        "muted": "dim",
    }
)

_FILE_FORMAT = "[%(asctime)s] [%(run_level)s] %(message)s"
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

# Shared console instance
console = Console(theme=_THEME)

_run_log = logging.getLogger("aks_capi_bootstrap.run")
_run_log.propagate = False
_run_log.setLevel(logging.DEBUG)
_run_log.addHandler(logging.NullHandler())

_threshold: LogLevel = LogLevel.INFO
_log_file: Path | None = None


def configure(*, level: LogLevel, log_dir: Path, command: str) -> Path:
    """Set the level threshold and open the log file for this run.

    The file is named ``<command>-<YYYYMMDD-HHMMSS>.log`` and stays open for
    the lifetime of the process. Calling configure() again replaces it.

    Args:
        level: Records below this level are dropped on both sinks.
        log_dir: Directory the log file is created in.
        command: Prefix for the log file name.

    Returns:
        Path of the opened log file.

    """
    global _threshold, _log_file

    _threshold = level
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"{command}-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"

    for handler in list(_run_log.handlers):
        _run_log.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_TIMESTAMP_FORMAT))
    _run_log.addHandler(handler)

    _log_file = path
    return path


def log_file() -> Path | None:
    """Path of the current run's log file, if one is open."""
    return _log_file


def _as_text(message: str) -> Text:
    try:
        return Text.from_markup(message)
    except MarkupError:
        # command output may carry unbalanced brackets
        return Text(message)


def log(level: LogLevel, message: str, *, icon: str = "") -> None:
    """Emit a record to the console and the log file.

    Args:
        level: Severity of the record.
        message: Message text; may contain Rich markup.
        icon: Optional styled prefix shown on the console only.

    """
    if level < _threshold:
        return

    body = _as_text(message)
    stamp = datetime.now().strftime(_TIMESTAMP_FORMAT)
    line = Text.assemble((f"[{stamp}] ", "muted"), _as_text(icon), " " if icon else "", body)
    console.print(line)
    _run_log.log(_STDLIB_LEVELS[level], body.plain, extra={"run_level": level.name})


def debug(message: str) -> None:
    """Print a debug message."""
    log(LogLevel.DEBUG, f"[muted]{message}[/muted]", icon="[muted]·[/muted]")


def info(message: str) -> None:
    """Print an informational message.

    Args:
        message: The message to display.

    """
    log(LogLevel.INFO, message, icon="[info]ℹ[/info]")


def success(message: str) -> None:
    """Print a success message.

    Args:
        message: The message to display.

    """
    log(LogLevel.INFO, message, icon="[success]✓[/success]")


def warning(message: str) -> None:
    """Print a warning message.

    Args:
        message: The message to display.

    """
    log(LogLevel.WARN, message, icon="[warning]⚠[/warning]")


def error(message: str) -> None:
    """Print an error message.

    Args:
        message: The message to display.

    """
    log(LogLevel.ERROR, message, icon="[error]✗[/error]")


def action(message: str) -> None:
    """Print an action/progress message."""
    log(LogLevel.INFO, message, icon="[info]→[/info]")


def step(message: str) -> None:
    """Print a sub-step message."""
    log(LogLevel.INFO, message, icon="[muted]•[/muted]")


def highlight(text: str) -> str:
    """Return text wrapped in highlight markup.

    Args:
        text: The text to highlight.

    Returns:
        Text, with its own brackets escaped, wrapped in highlight markup.

    """
    return f"[highlight]{escape(text)}[/highlight]"


@contextmanager
def spinner(message: str) -> Generator[None, None, None]:
    """Display a spinner while performing an operation.

    Args:
        message: The status message to display.

    Yields:
        None

    """
    with console.status(f"[info]{message}[/info]", spinner="dots"):
        yield


def banner(title: str) -> None:
    """Print a section banner and record the section start in the log."""
    if LogLevel.INFO < _threshold:
        return
    console.print(Panel(Text(title, justify="center", style="bold"), border_style="cyan"))
    _run_log.info("==== %s ====", title, extra={"run_level": LogLevel.INFO.name})


def summary_panel(title: str, items: dict[str, str]) -> None:
    """Print a summary panel with key-value pairs.

    Args:
        title: Title for the panel.
        items: Dictionary of label -> value pairs to display.

    """
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="cyan")

    for label, value in items.items():
        table.add_row(f"{label}:", value)
        _run_log.info("%s: %s", label, value, extra={"run_level": LogLevel.INFO.name})

    console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style="green"))


def newline() -> None:
    """Print an empty line."""
    console.print()
