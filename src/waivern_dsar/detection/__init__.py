"""Detection engine producing masked, confidence-scored results."""

from .classifiers import ContentClassifier, LLMCategoryClassifier, PdfTextLayerClassifier
from .engine import DetectionEngine
from .models import (
    DetectedCategory,
    DetectedElement,
    DetectionInput,
    DetectionResult,
    DetectorType,
    EvidenceScanResult,
    MatchOffsets,
)
from .redaction import RedactionSuggestion, generate_redaction_suggestions
from .sanitise import sanitise_error_message

__all__ = [
    "ContentClassifier",
    "DetectedCategory",
    "DetectedElement",
    "DetectionEngine",
    "DetectionInput",
    "DetectionResult",
    "DetectorType",
    "EvidenceScanResult",
    "LLMCategoryClassifier",
    "MatchOffsets",
    "PdfTextLayerClassifier",
    "RedactionSuggestion",
    "generate_redaction_suggestions",
    "sanitise_error_message",
]
