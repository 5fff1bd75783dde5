"""Document-metadata extraction for PDF buffers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from waivern_dsar.detection.matcher import (
    PatternHit,
    PatternMatcher,
    build_detection_result,
)
from waivern_dsar.detection.models import DetectionResult, DetectorType
from waivern_dsar.rulesets.catalog import PatternCatalog

logger = logging.getLogger(__name__)

_INFO_KEYS = {
    "title": "/Title",
    "author": "/Author",
    "subject": "/Subject",
    "creator": "/Creator",
    "producer": "/Producer",
    "keywords": "/Keywords",
}


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    """Descriptive fields of a document's information dictionary."""

    title: str | None = None
    author: str | None = None
    subject: str | None = None
    creator: str | None = None
    producer: str | None = None
    keywords: str | None = None
    page_count: int = 0

    def text_fields(self) -> list[str]:
        """Return the non-empty descriptive text fields."""
        values = (getattr(self, f.name) for f in fields(self) if f.name != "page_count")
        return [value for value in values if isinstance(value, str) and value.strip()]


def extract_document_metadata(document: bytes) -> DocumentMetadata:
    """Read the information dictionary of a PDF buffer.

    A buffer that is not a readable PDF yields empty metadata rather than an
    error, so a broken attachment never fails the evidence item.

    Args:
        document: Raw document bytes

    Returns:
        The extracted metadata.

    """
    if not document:
        return DocumentMetadata()

    try:
        reader = PdfReader(BytesIO(document))
        info = reader.metadata
        page_count = len(reader.pages)
    except (PdfReadError, ValueError, KeyError, TypeError, OSError) as e:
        logger.warning("Could not read document metadata: %s", type(e).__name__)
        return DocumentMetadata()

    if info is None:
        return DocumentMetadata(page_count=page_count)

    values: dict[str, str | None] = {}
    for field_name, key in _INFO_KEYS.items():
        raw = info.get(key)
        values[field_name] = str(raw) if raw is not None else None

    return DocumentMetadata(page_count=page_count, **values)


def scan_document_metadata(
    metadata: DocumentMetadata, catalog: PatternCatalog, matcher: PatternMatcher
) -> DetectionResult | None:
    """Run the value-based PII patterns against extracted metadata fields.

    Each field is scanned separately, independent of the content-scan gate,
    and no offsets are recorded since the fields are not part of the content.

    Returns:
        A PDF_METADATA detection result, or None when nothing matched.

    """
    text_fields = metadata.text_fields()
    if not text_fields:
        return None

    hits: list[PatternHit] = []
    for value in text_fields:
        hits.extend(matcher.find_hits(value, catalog.regex_patterns, with_offsets=False))
    return build_detection_result(DetectorType.PDF_METADATA, _merge_hits(hits))


def _merge_hits(hits: list[PatternHit]) -> list[PatternHit]:
    """Combine hits of the same pattern found in different fields."""
    merged: dict[str, PatternHit] = {}
    for hit in hits:
        existing = merged.get(hit.pattern.name)
        if existing is None:
            merged[hit.pattern.name] = hit
        else:
            merged[hit.pattern.name] = PatternHit(
                pattern=hit.pattern, matches=existing.matches + hit.matches
            )
    return list(merged.values())
