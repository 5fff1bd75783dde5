"""Pattern catalog and checksum validators."""

from .catalog import (
    DetectionPattern,
    HintSource,
    MetadataHint,
    PatternCatalog,
    PatternCatalogData,
    PatternKind,
    load_default_catalog,
)
from .validators import ValidatorName, validate_iban, validate_luhn

__all__ = [
    "DetectionPattern",
    "HintSource",
    "MetadataHint",
    "PatternCatalog",
    "PatternCatalogData",
    "PatternKind",
    "ValidatorName",
    "load_default_catalog",
    "validate_iban",
    "validate_luhn",
]
