"""CLI error handling."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import override

import typer
from rich.console import Console
from rich.panel import Panel

logger = logging.getLogger(__name__)
console = Console(stderr=True)


class CLIError(Exception):
    """Error raised by a CLI command, carrying the command name and cause."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialise the error.

        Args:
            message: What went wrong
            command: Name of the failing command, e.g. "scan"
            original_error: Underlying exception, if any

        """
        super().__init__(message)
        self.command = command
        self.original_error = original_error

    @override
    def __str__(self) -> str:
        message = super().__str__()
        if self.command:
            return f"Command '{self.command}' failed: {message}"
        return message


@contextmanager
def cli_error_handler(command: str, title: str) -> Generator[None]:
    """Show any error raised inside the block as a red panel and exit with 1.

    Args:
        command: Command name used as error context
        title: Panel title

    """
    try:
        yield
    except CLIError as e:
        _report(title, e)
        raise typer.Exit(1) from e
    except Exception as e:
        wrapped = CLIError(str(e), command=command, original_error=e)
        _report(title, wrapped)
        raise typer.Exit(1) from wrapped


def _report(title: str, error: CLIError) -> None:
    logger.error("%s: %s", title, error)
    console.print(Panel(f"[red]{error}[/red]", title=title, border_style="red"))
