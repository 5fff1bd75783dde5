"""Tests for the detection engine pipeline."""

from unittest.mock import MagicMock

from waivern_dsar.categories import DataCategory
from waivern_dsar.config import ContentHandlingMode, DetectionConfig
from waivern_dsar.detection.classifiers import LLMCategoryClassifier
from waivern_dsar.detection.engine import DetectionEngine
from waivern_dsar.detection.models import DetectionInput, DetectorType
from waivern_dsar.llm.base import BaseLLMService
from waivern_dsar.rulesets.catalog import PatternCatalog


def _item(text: str | None = None, **kwargs: str) -> DetectionInput:
    values = {"provider": "STATIC", "location": "static:item-1", **kwargs}
    return DetectionInput(text=text, **values)


def _llm_engine(catalog: PatternCatalog, response: str) -> tuple[DetectionEngine, MagicMock]:
    service = MagicMock(spec=BaseLLMService)
    service.analyse_data.return_value = response
    engine = DetectionEngine(
        catalog,
        DetectionConfig(content_mode=ContentHandlingMode.CONTENT_SCAN, enable_llm=True),
        llm_classifier=LLMCategoryClassifier(service, max_input_chars=1000),
    )
    return engine, service


class TestContentScan:
    """Tests for the regex and keyword stage."""

    def test_detects_contact_and_health_with_special_flag(
        self, content_engine: DetectionEngine, health_text: str
    ) -> None:
        """Email and health terms produce CONTACT and HEALTH."""
        scan = content_engine.analyse(_item(health_text))

        assert [r.detector_type for r in scan.results] == [DetectorType.REGEX]
        assert set(scan.categories) == {DataCategory.CONTACT, DataCategory.HEALTH}
        assert scan.contains_special_category is True
        assert scan.special_categories == [DataCategory.HEALTH]

    def test_results_never_contain_raw_values(
        self, content_engine: DetectionEngine, health_text: str
    ) -> None:
        """Serialised results do not include the matched email."""
        scan = content_engine.analyse(_item(health_text))
        assert "test@example.com" not in scan.model_dump_json()

    def test_invalid_iban_is_not_reported(self, content_engine: DetectionEngine) -> None:
        """A checksum-invalid IBAN yields no payment category."""
        scan = content_engine.analyse(_item("IBAN DE89370400440532013001"))
        assert DataCategory.PAYMENT not in scan.categories

    def test_valid_iban_is_reported_as_validated(
        self, content_engine: DetectionEngine
    ) -> None:
        """A checksum-valid IBAN is a validated PAYMENT element."""
        scan = content_engine.analyse(_item("IBAN DE89370400440532013000"))
        elements = [e for r in scan.results for e in r.detected_elements]
        iban = next(e for e in elements if e.element_type == "IBAN_DE")
        assert iban.category is DataCategory.PAYMENT
        assert iban.validated is True
        assert iban.confidence == 0.85

    def test_text_beyond_the_byte_cap_is_not_scanned(self, catalog: PatternCatalog) -> None:
        """Only the first max_content_bytes are scanned."""
        engine = DetectionEngine(
            catalog,
            DetectionConfig(
                content_mode=ContentHandlingMode.CONTENT_SCAN, max_content_bytes=100
            ),
        )
        scan = engine.analyse(_item("x" * 200 + " jane@example.com"))
        assert scan.results == ()

    def test_third_party_terms_are_flagged(self, content_engine: DetectionEngine) -> None:
        """Mentions of a spouse mark the item as containing third-party data."""
        scan = content_engine.analyse(_item("Please call my spouse instead."))
        assert scan.contains_third_party_data is True

    def test_scan_text_ignores_the_mode(self, metadata_engine: DetectionEngine) -> None:
        """scan_text is stage B on its own."""
        result = metadata_engine.scan_text("jane@example.com")
        assert result is not None
        assert result.detector_type is DetectorType.REGEX


class TestMetadataOnly:
    """Tests for the metadata-only mode."""

    def test_content_is_never_scanned(
        self, metadata_engine: DetectionEngine, health_text: str
    ) -> None:
        """Without content scanning, text yields nothing."""
        scan = metadata_engine.analyse(_item(health_text))
        assert scan.results == ()
        assert scan.contains_special_category is False

    def test_third_party_terms_are_not_inspected(
        self, metadata_engine: DetectionEngine
    ) -> None:
        """The third-party flag also requires content scanning."""
        scan = metadata_engine.analyse(_item("my spouse"))
        assert scan.contains_third_party_data is False

    def test_metadata_hints_apply(self, metadata_engine: DetectionEngine) -> None:
        """File name, MIME type and provider produce hints."""
        scan = metadata_engine.analyse(
            _item(
                provider="SALESFORCE",
                file_name="Payroll_2024.pdf",
                mime_type="text/calendar",
            )
        )
        assert [r.detector_type for r in scan.results] == [DetectorType.METADATA]
        assert scan.categories == {
            DataCategory.HR: 0.45,
            DataCategory.CONTACT: 0.4,
            DataCategory.COMMUNICATION: 0.35,
        }

    def test_metadata_hint_can_flag_special_category(
        self, metadata_engine: DetectionEngine
    ) -> None:
        """A medical file name suggests health data."""
        scan = metadata_engine.analyse(_item(file_name="medical_certificate.pdf"))
        assert scan.contains_special_category is True
        assert scan.special_categories == [DataCategory.HEALTH]

    def test_metadata_preview_is_masked(self, metadata_engine: DetectionEngine) -> None:
        """Matched metadata values are surfaced masked."""
        scan = metadata_engine.analyse(_item(file_name="payroll_jane_doe.pdf"))
        element = scan.results[0].detected_elements[0]
        assert element.snippet_preview != "payroll_jane_doe.pdf"
        assert "jane_doe" not in element.snippet_preview


class TestLLMStage:
    """Tests for the optional LLM classifier stage."""

    def test_uncorroborated_special_category_is_dropped(
        self, catalog: PatternCatalog
    ) -> None:
        """The LLM cannot introduce a special category on its own."""
        engine, _ = _llm_engine(
            catalog,
            '[{"category": "HEALTH", "confidence": 0.9}, '
            '{"category": "PAYMENT", "confidence": 0.6}]',
        )
        scan = engine.analyse(_item("The invoice was settled last week."))

        llm = next(r for r in scan.results if r.detector_type is DetectorType.LLM_CLASSIFIER)
        assert [c.category for c in llm.detected_categories] == [DataCategory.PAYMENT]
        assert scan.contains_special_category is False
        assert DataCategory.HEALTH not in scan.categories

    def test_corroborated_special_category_is_kept_without_flag(
        self, catalog: PatternCatalog, health_text: str
    ) -> None:
        """A special category already found may be confirmed by the LLM."""
        engine, _ = _llm_engine(
            catalog, '```json\n[{"category": "HEALTH", "confidence": 0.95}]\n```'
        )
        scan = engine.analyse(_item(health_text))

        llm = scan.results[-1]
        assert llm.detector_type is DetectorType.LLM_CLASSIFIER
        assert llm.contains_special_category_suspected is False
        assert scan.categories[DataCategory.HEALTH] == 0.95

    def test_unparseable_response_is_ignored(self, catalog: PatternCatalog) -> None:
        """Garbage from the LLM yields no result."""
        engine, service = _llm_engine(catalog, "I cannot help with that.")
        scan = engine.analyse(_item("Some text"))
        service.analyse_data.assert_called_once()
        assert scan.results == ()

    def test_llm_is_not_called_in_metadata_only_mode(
        self, catalog: PatternCatalog
    ) -> None:
        """The LLM stage is gated by the content mode."""
        service = MagicMock(spec=BaseLLMService)
        engine = DetectionEngine(
            catalog,
            DetectionConfig(enable_llm=True),
            llm_classifier=LLMCategoryClassifier(service, max_input_chars=1000),
        )
        engine.analyse(_item("Some text"))
        service.analyse_data.assert_not_called()


def test_content_classifier_runs_only_when_enabled(catalog: PatternCatalog) -> None:
    """A custom document classifier is used when the stage is enabled."""
    classifier = MagicMock()
    classifier.classify.return_value = None
    item = DetectionInput(provider="STATIC", location="x", document=b"not a pdf")

    DetectionEngine(
        catalog,
        DetectionConfig(content_mode=ContentHandlingMode.CONTENT_SCAN),
        content_classifier=classifier,
    ).analyse(item)
    classifier.classify.assert_not_called()

    DetectionEngine(
        catalog,
        DetectionConfig(content_mode=ContentHandlingMode.CONTENT_SCAN, enable_ocr=True),
        content_classifier=classifier,
    ).analyse(item)
    classifier.classify.assert_called_once_with(item)
