"""CLI command implementations."""

from waivern_dsar.cli.errors import CLIError
from waivern_dsar.cli.run import run_discovery_command
from waivern_dsar.cli.scan import (
    list_patterns_command,
    mask_value_command,
    scan_file_command,
)

__all__ = [
    "CLIError",
    "list_patterns_command",
    "mask_value_command",
    "run_discovery_command",
    "scan_file_command",
]
