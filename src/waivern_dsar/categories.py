"""Data category taxonomy, severity model and confidence levels.

The special-category predicate defined here is the single source of truth for
CRITICAL severity, mandatory legal review and the run-level legal hold flag.
"""

from enum import Enum


class DataCategory(Enum):
    """Categories of personal data a detection can be attributed to."""

    IDENTIFICATION = "IDENTIFICATION"
    CONTACT = "CONTACT"
    CONTRACT = "CONTRACT"
    PAYMENT = "PAYMENT"
    COMMUNICATION = "COMMUNICATION"
    HR = "HR"
    CREDITWORTHINESS = "CREDITWORTHINESS"
    ONLINE_TECHNICAL = "ONLINE_TECHNICAL"
    HEALTH = "HEALTH"
    RELIGION = "RELIGION"
    UNION = "UNION"
    POLITICAL_OPINION = "POLITICAL_OPINION"
    OTHER_SPECIAL_CATEGORY = "OTHER_SPECIAL_CATEGORY"
    """Biometric, genetic, ethnic origin, sexual orientation and criminal records."""
    OTHER = "OTHER"


class Severity(Enum):
    """Severity of an aggregated finding."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class ConfidenceLevel(Enum):
    """Coarse confidence bucket derived from a numeric confidence."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


SPECIAL_CATEGORIES: frozenset[DataCategory] = frozenset(
    {
        DataCategory.HEALTH,
        DataCategory.RELIGION,
        DataCategory.UNION,
        DataCategory.POLITICAL_OPINION,
        DataCategory.OTHER_SPECIAL_CATEGORY,
    }
)

SENSITIVE_CATEGORIES: frozenset[DataCategory] = frozenset(
    {
        DataCategory.PAYMENT,
        DataCategory.CREDITWORTHINESS,
        DataCategory.HR,
    }
)

HIGH_CONFIDENCE_THRESHOLD = 0.85
MEDIUM_CONFIDENCE_THRESHOLD = 0.50

# Display order for findings: most severe first
SEVERITY_ORDER: dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


def is_special_category(category: DataCategory) -> bool:
    """Check whether a category is an Art. 9 special category."""
    return category in SPECIAL_CATEGORIES


def severity_for(category: DataCategory) -> Severity:
    """Derive finding severity for a category.

    Args:
        category: The data category of the finding

    Returns:
        CRITICAL for special categories, WARNING for the sensitive set,
        INFO otherwise.

    """
    if is_special_category(category):
        return Severity.CRITICAL
    if category in SENSITIVE_CATEGORIES:
        return Severity.WARNING
    return Severity.INFO


def to_confidence_level(confidence: float) -> ConfidenceLevel:
    """Map a numeric confidence to its level, inclusive at each boundary."""
    if confidence >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
