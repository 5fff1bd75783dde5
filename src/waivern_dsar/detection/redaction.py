"""Redaction suggestions derived from detected elements.

Suggestions are never applied automatically. Each one starts as SUGGESTED and
must be approved or rejected by a reviewer with a privileged role.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict

from waivern_dsar.categories import ConfidenceLevel, DataCategory, is_special_category
from waivern_dsar.detection.models import DetectedElement, DetectionResult

SPECIAL_CATEGORY_LABEL = "[REDACTED SPECIAL CATEGORY DATA]"
DEFAULT_LABEL = "[REDACTED]"

REDACTION_REVIEW_ROLES = frozenset({"DPO", "TENANT_ADMIN", "SUPER_ADMIN"})

# Element type prefix -> redaction label, first match wins
_LABELS_BY_PREFIX: tuple[tuple[str, str], ...] = (
    ("EMAIL", "[REDACTED EMAIL]"),
    ("PHONE", "[REDACTED PHONE]"),
    ("IBAN", "[REDACTED IBAN]"),
    ("CREDIT_CARD", "[REDACTED CARD NUMBER]"),
    ("NAME", "[REDACTED NAME]"),
    ("ADDRESS", "[REDACTED ADDRESS]"),
    ("TAX_ID", "[REDACTED TAX ID]"),
    ("SSN", "[REDACTED SOCIAL SECURITY NUMBER]"),
    ("PASSPORT", "[REDACTED PASSPORT NUMBER]"),
    ("DOB", "[REDACTED DATE OF BIRTH]"),
    ("EMPLOYEE_ID", "[REDACTED EMPLOYEE ID]"),
    ("CUSTOMER_NUMBER", "[REDACTED CUSTOMER NUMBER]"),
    ("IP_", "[REDACTED IP ADDRESS]"),
    ("MAC_", "[REDACTED DEVICE ID]"),
)


class SuggestionStatus(Enum):
    """Review state of a redaction suggestion."""

    SUGGESTED = "SUGGESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RedactionSuggestion(BaseModel):
    """A proposed redaction of one detected element."""

    model_config = ConfigDict(frozen=True)

    evidence_item_id: str | None
    element_type: str
    category: DataCategory
    masked_snippet: str
    suggested_redaction: str
    reason: str
    status: SuggestionStatus = SuggestionStatus.SUGGESTED
    review_note: str | None = None


class ReviewDecision(BaseModel):
    """Outcome of validating a review action."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    code: str | None = None


def redaction_label(element_type: str, category: DataCategory) -> str:
    """Choose the replacement text for an element."""
    if is_special_category(category):
        return SPECIAL_CATEGORY_LABEL
    for prefix, label in _LABELS_BY_PREFIX:
        if element_type.startswith(prefix):
            return label
    return DEFAULT_LABEL


def redaction_reason(
    element: DetectedElement, contains_third_party_data: bool = False
) -> str:
    """Explain why an element is proposed for redaction."""
    level = element.confidence_level.value
    if is_special_category(element.category):
        return (
            f"Art. 9 special category data detected ({level} confidence). "
            "Redaction strongly recommended unless explicit legal basis for disclosure exists."
        )
    if contains_third_party_data:
        return (
            f"Personal data element ({element.element_type}) detected with {level} "
            "confidence in an item that may concern third parties. Redaction required "
            "unless the third party has consented to disclosure."
        )
    return (
        f"Personal data element ({element.element_type}) detected with {level} confidence. "
        "Review for potential redaction in DSAR response to protect third-party rights."
    )


def generate_redaction_suggestions(
    results: Iterable[DetectionResult],
    evidence_item_id: str | None = None,
    contains_third_party_data: bool = False,
    minimum_level: ConfidenceLevel = ConfidenceLevel.LOW,
) -> list[RedactionSuggestion]:
    """Propose a redaction for every detected element at or above a level.

    The snippet carried by a suggestion is the already-masked preview.

    Args:
        results: Detection results of one evidence item
        evidence_item_id: Evidence item the results belong to
        contains_third_party_data: Whether the item may concern third parties
        minimum_level: Lowest confidence level that yields a suggestion

    Returns:
        Suggestions in detection order, all with status SUGGESTED.

    """
    accepted_levels = _levels_at_or_above(minimum_level)
    suggestions: list[RedactionSuggestion] = []
    for result in results:
        for element in result.detected_elements:
            if element.confidence_level not in accepted_levels:
                continue
            suggestions.append(
                RedactionSuggestion(
                    evidence_item_id=evidence_item_id,
                    element_type=element.element_type,
                    category=element.category,
                    masked_snippet=element.snippet_preview,
                    suggested_redaction=redaction_label(
                        element.element_type, element.category
                    ),
                    reason=redaction_reason(element, contains_third_party_data),
                )
            )
    return suggestions


def validate_redaction_review(
    status: SuggestionStatus, reviewer_role: str
) -> ReviewDecision:
    """Check whether a reviewer may move a suggestion to `status`."""
    if reviewer_role not in REDACTION_REVIEW_ROLES:
        return ReviewDecision(
            allowed=False,
            reason=f"Role '{reviewer_role}' does not have permission to review redaction suggestions.",
            code="REDACTION_REVIEW_FORBIDDEN",
        )
    if status is SuggestionStatus.SUGGESTED:
        return ReviewDecision(
            allowed=False,
            reason="Redaction review status must be 'APPROVED' or 'REJECTED'.",
            code="INVALID_REDACTION_STATUS",
        )
    return ReviewDecision(allowed=True)


def review_suggestion(
    suggestion: RedactionSuggestion,
    status: SuggestionStatus,
    reviewer_role: str,
    note: str | None = None,
) -> RedactionSuggestion:
    """Return a reviewed copy of a suggestion.

    Raises:
        PermissionError: If the review action is not allowed

    """
    decision = validate_redaction_review(status, reviewer_role)
    if not decision.allowed:
        raise PermissionError(decision.reason)
    return suggestion.model_copy(update={"status": status, "review_note": note})


def _levels_at_or_above(minimum: ConfidenceLevel) -> set[ConfidenceLevel]:
    ordered = [ConfidenceLevel.HIGH, ConfidenceLevel.MEDIUM, ConfidenceLevel.LOW]
    return set(ordered[: ordered.index(minimum) + 1])
