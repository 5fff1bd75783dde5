"""Regex and keyword scanning with the pattern catalog."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import islice

from waivern_dsar.categories import DataCategory, to_confidence_level
from waivern_dsar.detection.confidence import compute_confidence
from waivern_dsar.detection.models import (
    DetectedCategory,
    DetectedElement,
    DetectionResult,
    DetectorType,
    MatchOffsets,
)
from waivern_dsar.rulesets.catalog import DetectionPattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MaskedMatch:
    """One accepted match, reduced to its masked preview and position."""

    preview: str
    offsets: MatchOffsets | None


@dataclass(frozen=True, slots=True)
class PatternHit:
    """All accepted matches of one pattern in one text.

    Attributes:
        pattern: The pattern that matched
        matches: Accepted matches, masked, in text order

    """

    pattern: DetectionPattern
    matches: tuple[MaskedMatch, ...]

    @property
    def validated(self) -> bool | None:
        """Whether matches passed a checksum; None when the pattern has none."""
        return True if self.pattern.validator is not None else None

    @property
    def confidence(self) -> float:
        """Confidence for this pattern given its number of matches."""
        return compute_confidence(
            self.pattern.kind, len(self.matches), validated=bool(self.validated)
        )


def truncate_to_bytes(text: str, max_bytes: int) -> str:
    """Cut text to at most `max_bytes` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


class PatternMatcher:
    """Applies detection patterns to text under a per-pattern match cap."""

    def __init__(self, max_matches_per_pattern: int) -> None:
        """Initialise the matcher.

        Args:
            max_matches_per_pattern: Maximum raw matches evaluated per pattern

        """
        self._max_matches = max_matches_per_pattern

    def find_hits(
        self,
        text: str,
        patterns: Iterable[DetectionPattern],
        with_offsets: bool = True,
    ) -> list[PatternHit]:
        """Scan text with every pattern and keep the accepted matches.

        Matches failing a pattern's checksum validator are dropped. Raw values
        are masked immediately and never leave this method.

        Args:
            text: Text to scan
            patterns: Patterns to apply
            with_offsets: Record character offsets of each match

        Returns:
            One hit per pattern with at least one accepted match.

        """
        if not text:
            return []

        hits: list[PatternHit] = []
        for pattern in patterns:
            accepted: list[MaskedMatch] = []
            dropped = 0
            for match in islice(pattern.finditer(text), self._max_matches):
                value = match.group()
                if not pattern.is_valid_match(value):
                    dropped += 1
                    continue
                offsets = (
                    MatchOffsets(start=match.start(), end=match.end())
                    if with_offsets
                    else None
                )
                accepted.append(MaskedMatch(pattern.redact(value), offsets))

            if dropped:
                logger.debug(
                    "Dropped %d match(es) of %s failing %s validation",
                    dropped,
                    pattern.name,
                    pattern.validator.value if pattern.validator else "",
                )
            if accepted:
                hits.append(PatternHit(pattern=pattern, matches=tuple(accepted)))
        return hits


def build_detection_result(
    detector_type: DetectorType, hits: Sequence[PatternHit]
) -> DetectionResult | None:
    """Group pattern hits into one detection result.

    Category confidence is the maximum over contributing patterns; the special
    flag is set iff any contributing pattern is special.

    Returns:
        The detection result, or None when there are no hits.

    """
    if not hits:
        return None

    elements: list[DetectedElement] = []
    best: dict[DataCategory, float] = {}
    contains_special = False

    for hit in hits:
        confidence = hit.confidence
        level = to_confidence_level(confidence)
        for match in hit.matches:
            elements.append(
                DetectedElement(
                    element_type=hit.pattern.name,
                    category=hit.pattern.category,
                    confidence=confidence,
                    confidence_level=level,
                    snippet_preview=match.preview,
                    offsets=match.offsets,
                    validated=hit.validated,
                )
            )
        category = hit.pattern.category
        if confidence > best.get(category, -1.0):
            best[category] = confidence
        contains_special = contains_special or hit.pattern.special

    return DetectionResult(
        detector_type=detector_type,
        detected_elements=tuple(elements),
        detected_categories=sort_categories(best),
        contains_special_category_suspected=contains_special,
    )


def sort_categories(best: dict[DataCategory, float]) -> tuple[DetectedCategory, ...]:
    """Order categories by confidence descending, then by name."""
    ordered = sorted(best.items(), key=lambda item: (-item[1], item[0].value))
    return tuple(DetectedCategory.of(category, conf) for category, conf in ordered)
