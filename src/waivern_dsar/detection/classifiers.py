"""Optional content classifiers: document text layer and LLM categories.

Both stages are disabled by default and may return no result. The LLM stage
is additive only: it never flags a special category on its own.
"""

from __future__ import annotations

import json
import logging
from io import BytesIO
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from waivern_dsar.categories import DataCategory
from waivern_dsar.detection.matcher import (
    PatternMatcher,
    build_detection_result,
    sort_categories,
    truncate_to_bytes,
)
from waivern_dsar.detection.models import DetectionInput, DetectionResult, DetectorType
from waivern_dsar.llm.base import BaseLLMService
from waivern_dsar.llm.errors import LLMServiceError
from waivern_dsar.llm.json_utils import extract_json_from_llm_response
from waivern_dsar.rulesets.catalog import PatternCatalog

logger = logging.getLogger(__name__)


class ContentClassifier(Protocol):
    """Classifier for document content the text scan cannot read directly."""

    def classify(self, item: DetectionInput) -> DetectionResult | None:
        """Classify an evidence item, returning None when nothing is found."""
        ...


class PdfTextLayerClassifier:
    """Reads the text layer of PDF documents and scans it with the catalog.

    This is the default document-content classifier. Scanned images without
    a text layer yield no result; an OCR engine can be plugged in instead by
    implementing `ContentClassifier`.
    """

    def __init__(
        self, catalog: PatternCatalog, matcher: PatternMatcher, max_content_bytes: int
    ) -> None:
        """Initialise the classifier.

        Args:
            catalog: Patterns applied to the extracted text
            matcher: Matcher enforcing the per-pattern match cap
            max_content_bytes: Hard cap on the extracted text scanned

        """
        self._catalog = catalog
        self._matcher = matcher
        self._max_content_bytes = max_content_bytes

    def classify(self, item: DetectionInput) -> DetectionResult | None:
        """Extract page text from the item's document and scan it."""
        if not item.document:
            return None

        text = self._extract_text(item.document)
        if not text:
            return None

        text = truncate_to_bytes(text, self._max_content_bytes)
        hits = self._matcher.find_hits(text, self._catalog.patterns)
        return build_detection_result(DetectorType.OCR, hits)

    def _extract_text(self, document: bytes) -> str:
        try:
            reader = PdfReader(BytesIO(document))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, KeyError, TypeError, OSError) as e:
            logger.warning("Could not read document text layer: %s", type(e).__name__)
            return ""
        return "\n".join(pages)


class LLMCategoryProposal(BaseModel):
    """A single category proposed by the LLM."""

    model_config = ConfigDict(extra="ignore")

    category: DataCategory
    confidence: float = Field(ge=0.0, le=1.0)


_PROPOSALS = TypeAdapter(list[LLMCategoryProposal])

CLASSIFICATION_PROMPT = f"""You classify text collected for a data subject access request.
Identify which categories of personal data the text contains.

Allowed categories: {", ".join(c.value for c in DataCategory)}

Respond with a JSON array only, for example:
[{{"category": "CONTACT", "confidence": 0.8}}]
Respond with [] when no personal data is present. Never quote the text."""


class LLMCategoryClassifier:
    """Proposes data categories for text using an LLM service."""

    def __init__(self, llm_service: BaseLLMService, max_input_chars: int) -> None:
        """Initialise the classifier.

        Args:
            llm_service: LLM service used for classification
            max_input_chars: Maximum number of characters sent to the service

        """
        self._llm_service = llm_service
        self._max_input_chars = max_input_chars

    def classify(self, text: str) -> DetectionResult | None:
        """Ask the LLM for categories present in the text.

        Service errors and unparseable responses yield no result. The result
        never sets the special-category flag.

        Returns:
            An LLM_CLASSIFIER detection result with categories only, or None.

        """
        if not text.strip():
            return None

        try:
            response = self._llm_service.analyse_data(
                text[: self._max_input_chars], CLASSIFICATION_PROMPT
            )
        except LLMServiceError as e:
            logger.warning(f"LLM classification unavailable: {e}")
            return None

        try:
            proposals = _PROPOSALS.validate_python(
                json.loads(extract_json_from_llm_response(response))
            )
        except (ValueError, ValidationError) as e:
            logger.warning(f"Discarding unparseable LLM classification: {type(e).__name__}")
            return None

        best: dict[DataCategory, float] = {}
        for proposal in proposals:
            confidence = round(proposal.confidence, 2)
            if confidence > best.get(proposal.category, -1.0):
                best[proposal.category] = confidence

        if not best:
            return None

        return DetectionResult(
            detector_type=DetectorType.LLM_CLASSIFIER,
            detected_categories=sort_categories(best),
            contains_special_category_suspected=False,
        )
