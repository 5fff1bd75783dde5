"""Command-line interface for the DSAR discovery pipeline.

Commands:
- scan: run the detection engine on a local file
- mask: show the masked form of a value
- ls-patterns: list the detection pattern catalog
- run: execute a discovery run from a discovery file
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from waivern_dsar.cli import (
    list_patterns_command,
    mask_value_command,
    run_discovery_command,
    scan_file_command,
)
from waivern_dsar.config import ContentHandlingMode
from waivern_dsar.masking import PIIType

# Load environment variables from .env file if it exists
_ = load_dotenv()

app = typer.Typer(name="waivern-dsar")

LogLevelOption = Annotated[
    str,
    typer.Option(
        "--log-level",
        help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        case_sensitive=False,
    ),
]


@app.command()
def scan(
    file: Annotated[
        Path,
        typer.Argument(
            help="Text or PDF file to scan",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    mode: Annotated[
        ContentHandlingMode,
        typer.Option("--mode", help="Content handling mode", case_sensitive=False),
    ] = ContentHandlingMode.CONTENT_SCAN,
    ocr: Annotated[
        bool,
        typer.Option("--ocr", help="Classify the text layer of PDF documents"),
    ] = False,
    log_level: LogLevelOption = "WARNING",
) -> None:
    """Detect personal data in a file and print masked results.

    Example:
        waivern-dsar scan letter.txt --mode CONTENT_SCAN

    """
    scan_file_command(file, mode, ocr, log_level)


@app.command()
def mask(
    value: Annotated[str, typer.Argument(help="Value to mask")],
    pii_type: Annotated[
        PIIType,
        typer.Option("--type", "-t", help="Masking rule to apply", case_sensitive=False),
    ] = PIIType.GENERIC,
) -> None:
    """Print the masked form of a value."""
    mask_value_command(value, pii_type)


@app.command(name="ls-patterns")
def list_patterns(log_level: LogLevelOption = "WARNING") -> None:
    """List the detection patterns of the default catalog."""
    list_patterns_command(log_level)


@app.command()
def run(
    discovery_file: Annotated[
        Path,
        typer.Argument(
            help="Path to the discovery YAML file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Save the full run result to a JSON file",
            file_okay=True,
            dir_okay=False,
            writable=True,
            rich_help_panel="Output",
        ),
    ] = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Execute a discovery run described by a discovery file.

    Example:
        waivern-dsar run discovery.yaml --output result.json

    """
    run_discovery_command(discovery_file, output, log_level)


if __name__ == "__main__":
    app()
