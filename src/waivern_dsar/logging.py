"""Python-standard logging configuration for the DSAR pipeline.

Logging is configured with logging.config.dictConfig() from YAML files shipped
in the package's logging_configs/ directory, one per environment. Modules use
``logging.getLogger(__name__)`` directly and never log raw personal data.
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Any, cast

import yaml

CONFIG_DIR = Path(__file__).parent / "logging_configs"
DEFAULT_CONFIG = "logging.yaml"
ENVIRONMENT_VARIABLE = "WAIVERN_DSAR_ENV"
PACKAGE_LOGGER = "waivern_dsar"

_ENVIRONMENT_ALIASES = {
    "dev": "dev",
    "development": "dev",
    "test": "test",
    "prod": "prod",
    "production": "prod",
}


class LoggingError(Exception):
    """Exception raised for logging configuration errors."""


def get_config_path(environment: str | None = None) -> Path:
    """Get the logging configuration file for an environment.

    Args:
        environment: dev, test or prod (or an alias); the WAIVERN_DSAR_ENV
            variable when omitted. Unknown environments use the general file.

    Raises:
        LoggingError: If the general configuration file is missing

    """
    env = (environment or os.getenv(ENVIRONMENT_VARIABLE, "")).lower()
    alias = _ENVIRONMENT_ALIASES.get(env)
    config_path = CONFIG_DIR / (f"logging-{alias}.yaml" if alias else DEFAULT_CONFIG)
    if not config_path.exists():
        config_path = CONFIG_DIR / DEFAULT_CONFIG
    if not config_path.exists():
        raise LoggingError(f"No logging configuration found in {CONFIG_DIR}")
    return config_path


def load_config(config_path: Path) -> dict[str, Any]:
    """Load a dictConfig mapping from a YAML file.

    Raises:
        LoggingError: If the file cannot be read or does not hold a mapping

    """
    try:
        with open(config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise LoggingError(f"Failed to parse YAML config {config_path}: {e}") from e
    except OSError as e:
        raise LoggingError(f"Failed to read config file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise LoggingError(f"Invalid configuration format in {config_path}")
    return cast(dict[str, Any], config)


def setup_logging(config_path: Path | str | None = None, level: str | None = None) -> None:
    """Configure logging for a CLI command.

    Any failure to apply the file-based configuration falls back to basic
    console logging on stderr.

    Args:
        config_path: Logging configuration file; chosen by environment when omitted
        level: Level applied to the package and root loggers after configuration

    """
    try:
        numeric_level = _parse_level(level) if level else None
        path = Path(config_path) if config_path else get_config_path()
        config = load_config(path)
        for handler in config.get("handlers", {}).values():
            if isinstance(handler, dict) and "filename" in handler:
                Path(cast(str, handler["filename"])).parent.mkdir(
                    parents=True, exist_ok=True
                )
        logging.config.dictConfig(config)
    except (LoggingError, ImportError, KeyError, ValueError, TypeError) as e:
        fallback_level = level or "INFO"
        _setup_basic_logging(fallback_level)
        logging.getLogger(__name__).warning(
            "Failed to configure logging from file (%s), using basic console logging at %s level",
            e,
            fallback_level,
        )
        return

    if numeric_level is not None:
        _apply_level(numeric_level)
    logging.getLogger(__name__).debug("Logging configured from: %s", path.name)


def _parse_level(level: str) -> int:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise LoggingError(f"Invalid log level: {level}")
    return numeric_level


def _apply_level(numeric_level: int) -> None:
    """Set the package and root levels; handlers are only ever made more verbose."""
    for logger in (logging.getLogger(PACKAGE_LOGGER), logging.getLogger()):
        logger.setLevel(numeric_level)
        for handler in logger.handlers:
            if numeric_level < handler.level:
                handler.setLevel(numeric_level)


def _setup_basic_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
