"""Metadata classification: category hints without reading content."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from waivern_dsar.categories import DataCategory, to_confidence_level
from waivern_dsar.detection.matcher import sort_categories
from waivern_dsar.detection.models import (
    DetectedElement,
    DetectionInput,
    DetectionResult,
    DetectorType,
)
from waivern_dsar.masking import PIIType, redact_sample
from waivern_dsar.rulesets.catalog import HintSource, MetadataHint

logger = logging.getLogger(__name__)


def _metadata_values(item: DetectionInput, source: HintSource) -> tuple[str | None, ...]:
    match source:
        case HintSource.FILE_NAME:
            return (item.file_name, item.title)
        case HintSource.MIME_TYPE:
            return (item.mime_type,)
        case HintSource.PROVIDER:
            return (item.provider,)


def classify_metadata(
    item: DetectionInput, hints: Sequence[MetadataHint]
) -> DetectionResult | None:
    """Assign low or medium confidence category hints from item metadata.

    Only the file name, title, MIME type and provider are inspected. The
    matched metadata value is surfaced only in masked form.

    Args:
        item: The evidence item being classified
        hints: Metadata hints from the pattern catalog

    Returns:
        A METADATA detection result, or None when no hint applies.

    """
    elements: list[DetectedElement] = []
    best: dict[DataCategory, float] = {}
    contains_special = False

    for hint in hints:
        value = next(
            (v for v in _metadata_values(item, hint.source) if hint.applies_to(v)),
            None,
        )
        if value is None:
            continue
        elements.append(
            DetectedElement(
                element_type=hint.name,
                category=hint.category,
                confidence=hint.confidence,
                confidence_level=to_confidence_level(hint.confidence),
                snippet_preview=redact_sample(value, PIIType.GENERIC),
            )
        )
        if hint.confidence > best.get(hint.category, -1.0):
            best[hint.category] = hint.confidence
        contains_special = contains_special or hint.special

    if not elements:
        return None

    logger.debug("Metadata hints for %s: %d", item.location, len(elements))
    return DetectionResult(
        detector_type=DetectorType.METADATA,
        detected_elements=tuple(elements),
        detected_categories=sort_categories(best),
        contains_special_category_suspected=contains_special,
    )
