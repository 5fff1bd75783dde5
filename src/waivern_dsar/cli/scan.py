"""CLI commands working on single values and files: scan, mask, ls-patterns."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

from rich.console import Console

from waivern_dsar.cli.errors import CLIError, cli_error_handler
from waivern_dsar.cli.formatting import OutputFormatter
from waivern_dsar.config import ContentHandlingMode, DetectionConfig
from waivern_dsar.detection.engine import DetectionEngine
from waivern_dsar.detection.models import DetectionInput
from waivern_dsar.logging import setup_logging
from waivern_dsar.masking import PIIType, redact_sample
from waivern_dsar.rulesets.catalog import load_default_catalog

logger = logging.getLogger(__name__)
console = Console()

PDF_MIME_TYPE = "application/pdf"


def _read_input(path: Path) -> DetectionInput:
    """Build the detection input for a local file."""
    mime_type, _ = mimetypes.guess_type(path.name)
    try:
        if mime_type == PDF_MIME_TYPE:
            document, text = path.read_bytes(), None
        else:
            document, text = None, path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise CLIError(f"Cannot read {path}: {e.strerror}", command="scan") from e

    return DetectionInput(
        provider="LOCAL",
        location=f"file:{path.name}",
        title=path.stem,
        file_name=path.name,
        mime_type=mime_type,
        text=text,
        document=document,
    )


def scan_file_command(
    path: Path,
    mode: ContentHandlingMode,
    enable_ocr: bool = False,
    log_level: str = "INFO",
) -> None:
    """Run the detection engine on a local text or PDF file.

    Args:
        path: File to scan
        mode: Content handling mode
        enable_ocr: Also classify the text layer of PDF documents
        log_level: Logging level

    """
    setup_logging(level=log_level)
    with cli_error_handler("scan", "Scan failed"):
        engine = DetectionEngine(
            load_default_catalog(),
            DetectionConfig(content_mode=mode, enable_ocr=enable_ocr),
        )
        item = _read_input(path)
        scan = engine.analyse(item)
        logger.info(f"Scanned {item.location}: {len(scan.results)} detector result(s)")
        OutputFormatter().format_scan_result(item.location, scan)


def mask_value_command(value: str, pii_type: PIIType) -> None:
    """Print the masked form of a value."""
    console.print(redact_sample(value, pii_type), markup=False, highlight=False)


def list_patterns_command(log_level: str = "INFO") -> None:
    """List the patterns of the default catalog.

    Args:
        log_level: Logging level

    """
    setup_logging(level=log_level)
    with cli_error_handler("ls-patterns", "Failed to list patterns"):
        OutputFormatter().format_pattern_list(load_default_catalog())
