"""DSAR discovery and detection pipeline.

Discovers, classifies and masks personal data about a single data subject
across external record systems.
"""

from waivern_dsar.categories import DataCategory, Severity, is_special_category
from waivern_dsar.config import ContentHandlingMode, DetectionConfig, DiscoveryConfig
from waivern_dsar.detection import DetectionEngine
from waivern_dsar.masking import PIIType, redact_sample
from waivern_dsar.orchestration import DiscoveryOrchestrator, DiscoveryRunResult
from waivern_dsar.rulesets import PatternCatalog, load_default_catalog

__version__ = "0.1.0"

__all__ = [
    "ContentHandlingMode",
    "DataCategory",
    "DetectionConfig",
    "DetectionEngine",
    "DiscoveryConfig",
    "DiscoveryOrchestrator",
    "DiscoveryRunResult",
    "PIIType",
    "PatternCatalog",
    "Severity",
    "is_special_category",
    "load_default_catalog",
    "redact_sample",
    "__version__",
]
