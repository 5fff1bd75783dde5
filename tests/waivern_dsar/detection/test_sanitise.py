"""Tests for error message sanitising."""

from waivern_dsar.detection.sanitise import sanitise_error_message
from waivern_dsar.rulesets.catalog import PatternCatalog


class TestSanitiseErrorMessage:
    """Tests for sanitise_error_message."""

    def test_masks_email_and_phone(self, catalog: PatternCatalog) -> None:
        """Personal data echoed by a connector is masked."""
        message = "Lookup failed for jane.doe@example.com (phone +49 30 1234567)"
        sanitised = sanitise_error_message(message, catalog)
        assert "jane.doe@example.com" not in sanitised
        assert "1234567" not in sanitised
        assert sanitised.startswith("Lookup failed for ")

    def test_masks_checksum_invalid_identifiers(self, catalog: PatternCatalog) -> None:
        """Values are masked even when they fail validation."""
        sanitised = sanitise_error_message(
            "Unknown IBAN DE89370400440532013001", catalog
        )
        assert "DE89370400440532013001" not in sanitised

    def test_leaves_plain_messages_alone(self, catalog: PatternCatalog) -> None:
        """Messages without personal data are unchanged."""
        assert sanitise_error_message("Connection refused", catalog) == "Connection refused"

    def test_truncates_long_messages(self, catalog: PatternCatalog) -> None:
        """The result never exceeds the maximum length."""
        sanitised = sanitise_error_message("x" * 1000, catalog, max_length=50)
        assert len(sanitised) == 50
        assert sanitised.endswith("...")
