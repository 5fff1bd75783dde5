"""Data models produced by the detection engine.

None of these models ever holds a raw matched value: element previews are
always the output of the masking policy.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from waivern_dsar.categories import (
    ConfidenceLevel,
    DataCategory,
    is_special_category,
    to_confidence_level,
)


class DetectorType(Enum):
    """Pipeline stage that produced a detection result."""

    METADATA = "METADATA"
    REGEX = "REGEX"
    PDF_METADATA = "PDF_METADATA"
    OCR = "OCR"
    LLM_CLASSIFIER = "LLM_CLASSIFIER"


class MatchOffsets(BaseModel):
    """Character offsets of a match within the scanned text."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)


class DetectedElement(BaseModel):
    """A single detected value, represented only by its masked preview."""

    model_config = ConfigDict(frozen=True)

    element_type: str = Field(description="Name of the pattern or hint that matched")
    category: DataCategory
    confidence: float = Field(ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel
    snippet_preview: str = Field(description="Masked preview of the matched value")
    offsets: MatchOffsets | None = None
    validated: bool | None = Field(
        default=None,
        description="True when a checksum validator passed; None when no validator applies",
    )


class DetectedCategory(BaseModel):
    """A data category observed by a detector, with its maximum confidence."""

    model_config = ConfigDict(frozen=True)

    category: DataCategory
    confidence: float = Field(ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel

    @classmethod
    def of(cls, category: DataCategory, confidence: float) -> DetectedCategory:
        """Create a detected category with its derived confidence level."""
        return cls(
            category=category,
            confidence=confidence,
            confidence_level=to_confidence_level(confidence),
        )


class DetectionResult(BaseModel):
    """Output of one detector for one evidence item."""

    model_config = ConfigDict(frozen=True)

    detector_type: DetectorType
    detected_elements: tuple[DetectedElement, ...] = ()
    detected_categories: tuple[DetectedCategory, ...] = ()
    contains_special_category_suspected: bool = False


class DetectionInput(BaseModel):
    """Everything the engine may inspect for one evidence item."""

    model_config = ConfigDict(frozen=True)

    provider: str
    location: str
    title: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    text: str | None = None
    document: bytes | None = None


class EvidenceScanResult(BaseModel):
    """All detection results for one evidence item."""

    model_config = ConfigDict(frozen=True)

    results: tuple[DetectionResult, ...] = ()
    contains_third_party_data: bool = False

    @property
    def categories(self) -> dict[DataCategory, float]:
        """Maximum confidence per category across all detectors."""
        best: dict[DataCategory, float] = {}
        for result in self.results:
            for detected in result.detected_categories:
                if detected.confidence > best.get(detected.category, -1.0):
                    best[detected.category] = detected.confidence
        return best

    @property
    def contains_special_category(self) -> bool:
        """Whether any detector flagged a special category."""
        return any(r.contains_special_category_suspected for r in self.results)

    @property
    def special_categories(self) -> list[DataCategory]:
        """Special categories observed, in taxonomy order."""
        observed = self.categories
        return [c for c in DataCategory if c in observed and is_special_category(c)]
