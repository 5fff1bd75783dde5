"""CLI command executing a discovery run from a discovery file."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from pydantic import ValidationError

from waivern_dsar.cli.errors import CLIError, cli_error_handler
from waivern_dsar.cli.formatting import OutputFormatter
from waivern_dsar.config import DetectionConfig
from waivern_dsar.detection.classifiers import LLMCategoryClassifier
from waivern_dsar.detection.engine import DetectionEngine
from waivern_dsar.llm.configuration import LLMServiceConfiguration
from waivern_dsar.logging import setup_logging
from waivern_dsar.orchestration.discovery_file import load_discovery_file
from waivern_dsar.orchestration.models import DiscoveryRunResult, RunStatus
from waivern_dsar.orchestration.orchestrator import DiscoveryOrchestrator
from waivern_dsar.orchestration.sinks import InMemoryDiscoverySink
from waivern_dsar.rulesets.catalog import load_default_catalog

logger = logging.getLogger(__name__)


def _build_llm_classifier(config: DetectionConfig) -> LLMCategoryClassifier | None:
    """Create the LLM classifier when the stage is enabled."""
    if not config.enable_llm:
        return None
    try:
        llm_config = LLMServiceConfiguration.from_properties({})
    except ValidationError as e:
        raise CLIError(
            "LLM classification is enabled but ANTHROPIC_API_KEY is not set",
            command="run",
            original_error=e,
        ) from e
    return LLMCategoryClassifier(llm_config.create_service(), config.llm_max_input_chars)


def _write_output(result: DiscoveryRunResult, output: Path) -> None:
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(result.model_dump(mode="json"), f, indent=2)
    except OSError as e:
        raise CLIError(
            f"Cannot write results to {output}: {e.strerror}",
            command="run",
            original_error=e,
        ) from e
    logger.info(f"Results written to {output}")


def run_discovery_command(
    discovery_file: Path, output: Path | None = None, log_level: str = "INFO"
) -> None:
    """Execute the discovery run described by a discovery file.

    Args:
        discovery_file: Path to the YAML discovery file
        output: Optional JSON file receiving the full run result
        log_level: Logging level

    """
    setup_logging(level=log_level)
    with cli_error_handler("run", "Discovery run failed"):
        definition = load_discovery_file(discovery_file)
        detection = definition.config.detection
        engine = DetectionEngine(
            load_default_catalog(),
            detection,
            llm_classifier=_build_llm_classifier(detection),
        )
        orchestrator = DiscoveryOrchestrator(
            case_repository=definition.case_repository(),
            connector_registry=definition.connector_registry(
                base_dir=discovery_file.parent
            ),
            engine=engine,
            sink=InMemoryDiscoverySink(),
            config=definition.config,
        )

        result = asyncio.run(orchestrator.execute(definition.context()))
        OutputFormatter().format_run_result(result)
        if output is not None:
            _write_output(result, output)

    if result.status is RunStatus.FAILED:
        raise typer.Exit(1)
