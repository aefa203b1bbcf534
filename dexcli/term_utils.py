import os
import sys

from pygments import highlight, lexers, formatters
from rich.console import Console

from . import json_utils

# Status messages go to stderr, stdout is reserved for the credential payload.
_statusConsole = None


def _getStatusConsole() -> Console:
    global _statusConsole
    if _statusConsole is None:
        _statusConsole = Console( stderr = True, highlight = False )
    return _statusConsole


def printStatus(message: str) -> None:
    """
    Print a human readable status line to stderr.

    The message may contain rich markup such as "[bold red]...[/bold red]".
    """
    _getStatusConsole().print(message, soft_wrap=True)


def useColors() -> bool:
    """Colors only when stdout is an interactive terminal that accepts them (NO_COLOR, TERM=dumb)."""
    if not sys.stdout.isatty() or "NO_COLOR" in os.environ:
        return False
    return os.environ.get("TERM", "") != "dumb"

def prettyFormatDict(data: dict, use_colors: bool = None) -> str:
    """
    Pretty format a dictionary to a JSON string, optionally with ANSI colors.

    :param data: The dictionary to format.
    :param use_colors: Whether to use ANSI colors, defaults to useColors().
    :return: The formatted string.
    """
    formatted_json = json_utils.dumps(data, sort_keys=True, indent=2)

    use_colors = (use_colors if use_colors is not None else useColors())
    if use_colors:
        result = highlight(formatted_json, lexers.JsonLexer(), formatters.TerminalFormatter())
    else:
        result = formatted_json

    return result
