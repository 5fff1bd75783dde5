"""Masking of personal data inside free-text error messages."""

import re
from functools import partial

from waivern_dsar.rulesets.catalog import DetectionPattern, PatternCatalog

MAX_ERROR_MESSAGE_LENGTH = 500


def _redact_match(pattern: DetectionPattern, match: re.Match[str]) -> str:
    return pattern.redact(match.group())


def sanitise_error_message(
    message: str, catalog: PatternCatalog, max_length: int = MAX_ERROR_MESSAGE_LENGTH
) -> str:
    """Mask every value-pattern match in an error message and truncate it.

    Every regex pattern is applied without checksum validation, so even a
    malformed identifier echoed by a connector is masked.

    Args:
        message: Raw error message
        catalog: Catalog providing the value patterns and their masking rules
        max_length: Maximum length of the returned message

    Returns:
        The sanitised message.

    """
    sanitised = message
    for pattern in catalog.regex_patterns:
        sanitised = pattern.matcher.sub(partial(_redact_match, pattern), sanitised)

    if len(sanitised) > max_length:
        sanitised = sanitised[: max_length - 3] + "..."
    return sanitised
