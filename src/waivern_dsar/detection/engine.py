"""Detection engine: the five-stage pipeline run for every evidence item."""

from __future__ import annotations

import logging

from waivern_dsar.categories import DataCategory, is_special_category
from waivern_dsar.config import DetectionConfig
from waivern_dsar.detection.classifiers import (
    ContentClassifier,
    LLMCategoryClassifier,
    PdfTextLayerClassifier,
)
from waivern_dsar.detection.document import (
    extract_document_metadata,
    scan_document_metadata,
)
from waivern_dsar.detection.matcher import (
    PatternMatcher,
    build_detection_result,
    truncate_to_bytes,
)
from waivern_dsar.detection.metadata import classify_metadata
from waivern_dsar.detection.models import (
    DetectionInput,
    DetectionResult,
    DetectorType,
    EvidenceScanResult,
)
from waivern_dsar.rulesets.catalog import PatternCatalog

logger = logging.getLogger(__name__)


class DetectionEngine:
    """Turns evidence items into confidence-scored, masked detection results.

    Stages per item:
        A. Metadata classification (always)
        B. Regex/keyword scan of text (content-scan modes only)
        C. Document-metadata extraction (whenever a document is present)
        D. Document-content classifier (enabled explicitly, content-scan modes)
        E. LLM category classifier (enabled explicitly, content-scan modes,
           additive only)

    The engine holds no per-run state and is safe to share across threads.
    """

    def __init__(
        self,
        catalog: PatternCatalog,
        config: DetectionConfig | None = None,
        content_classifier: ContentClassifier | None = None,
        llm_classifier: LLMCategoryClassifier | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            catalog: Pattern catalog applied by every stage
            config: Detection configuration, defaults to metadata-only
            content_classifier: Stage D classifier; defaults to the PDF text
                layer classifier when the stage is enabled
            llm_classifier: Stage E classifier; the stage is skipped without one

        """
        self._catalog = catalog
        self._config = config or DetectionConfig()
        self._matcher = PatternMatcher(self._config.max_matches_per_pattern)

        if self._config.enable_ocr and content_classifier is None:
            content_classifier = PdfTextLayerClassifier(
                catalog, self._matcher, self._config.max_content_bytes
            )
        self._content_classifier = content_classifier
        self._llm_classifier = llm_classifier

        if self._config.enable_llm and llm_classifier is None:
            logger.warning("LLM classification enabled but no classifier provided")

    @property
    def catalog(self) -> PatternCatalog:
        """The pattern catalog used by this engine."""
        return self._catalog

    @property
    def config(self) -> DetectionConfig:
        """The detection configuration used by this engine."""
        return self._config

    def scan_text(self, text: str) -> DetectionResult | None:
        """Apply every catalog pattern to text under the size and match caps.

        This is stage B on its own and ignores the content handling mode.

        Returns:
            A REGEX detection result, or None when nothing matched.

        """
        if not text:
            return None
        bounded = truncate_to_bytes(text, self._config.max_content_bytes)
        hits = self._matcher.find_hits(bounded, self._catalog.patterns)
        return build_detection_result(DetectorType.REGEX, hits)

    def analyse(self, item: DetectionInput) -> EvidenceScanResult:
        """Run every applicable stage for one evidence item.

        Args:
            item: The evidence item to analyse

        Returns:
            All non-empty detection results plus the third-party flag.

        """
        results: list[DetectionResult] = []
        content_allowed = self._config.content_mode.allows_content_scan()

        if (metadata := classify_metadata(item, self._catalog.metadata_hints)) is not None:
            results.append(metadata)

        if content_allowed and item.text:
            if (scanned := self.scan_text(item.text)) is not None:
                results.append(scanned)

        if item.document:
            document_metadata = extract_document_metadata(item.document)
            pdf_result = scan_document_metadata(
                document_metadata, self._catalog, self._matcher
            )
            if pdf_result is not None:
                results.append(pdf_result)

        if (
            self._config.enable_ocr
            and content_allowed
            and self._content_classifier is not None
        ):
            if (classified := self._content_classifier.classify(item)) is not None:
                results.append(classified)

        if (
            self._config.enable_llm
            and content_allowed
            and self._llm_classifier is not None
            and item.text
        ):
            llm_input = truncate_to_bytes(item.text, self._config.max_content_bytes)
            proposed = self._llm_classifier.classify(llm_input)
            if proposed is not None:
                additive = _restrict_to_corroborated(proposed, results)
                if additive is not None:
                    results.append(additive)

        third_party = bool(
            content_allowed
            and item.text
            and self._catalog.contains_third_party_terms(
                truncate_to_bytes(item.text, self._config.max_content_bytes)
            )
        )

        logger.debug(
            "Analysed %s: %d result(s), third-party=%s",
            item.location,
            len(results),
            third_party,
        )
        return EvidenceScanResult(
            results=tuple(results), contains_third_party_data=third_party
        )


def _restrict_to_corroborated(
    proposed: DetectionResult, earlier: list[DetectionResult]
) -> DetectionResult | None:
    """Drop special categories the earlier stages did not already detect."""
    corroborated: set[DataCategory] = {
        detected.category for result in earlier for detected in result.detected_categories
    }
    kept = tuple(
        detected
        for detected in proposed.detected_categories
        if not is_special_category(detected.category)
        or detected.category in corroborated
    )
    dropped = len(proposed.detected_categories) - len(kept)
    if dropped:
        logger.info("Ignored %d uncorroborated special category proposal(s)", dropped)
    if not kept:
        return None
    return proposed.model_copy(
        update={"detected_categories": kept, "contains_special_category_suspected": False}
    )
