"""Shared fixtures for the DSAR pipeline tests."""

from __future__ import annotations

import pytest

from waivern_dsar.config import ContentHandlingMode, DetectionConfig
from waivern_dsar.detection.engine import DetectionEngine
from waivern_dsar.identity.models import DataSubject
from waivern_dsar.rulesets.catalog import PatternCatalog, load_default_catalog

HEALTH_TEXT = "Email: test@example.com. The patient was diagnosed with diabetes."


@pytest.fixture
def catalog() -> PatternCatalog:
    """The packaged default pattern catalog."""
    return load_default_catalog()


@pytest.fixture
def content_engine(catalog: PatternCatalog) -> DetectionEngine:
    """Detection engine allowed to scan content."""
    return DetectionEngine(
        catalog, DetectionConfig(content_mode=ContentHandlingMode.CONTENT_SCAN)
    )


@pytest.fixture
def metadata_engine(catalog: PatternCatalog) -> DetectionEngine:
    """Detection engine restricted to metadata."""
    return DetectionEngine(catalog, DetectionConfig())


@pytest.fixture
def subject() -> DataSubject:
    """A data subject with an email, phone and a custom identifier."""
    return DataSubject(
        full_name="Jane Doe",
        email="jane.doe@example.com",
        phone="+49 30 1234567",
        identifiers={"employeeId": "EMP-12345"},
    )


@pytest.fixture
def health_text() -> str:
    """Text with a contact detail and health terms."""
    return HEALTH_TEXT
