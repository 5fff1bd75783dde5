"""Confidence arithmetic for pattern matches."""

from waivern_dsar.rulesets.catalog import PatternKind

REGEX_BASE_CONFIDENCE = 0.75
KEYWORD_BASE_CONFIDENCE = 0.60
ADDITIONAL_MATCH_BOOST = 0.05
MAX_MATCH_BOOST = 0.20
VALIDATION_BOOST = 0.10


def compute_confidence(
    kind: PatternKind, match_count: int, validated: bool = False
) -> float:
    """Compute the confidence for a pattern that matched `match_count` times.

    Regex patterns start higher than keyword patterns. Every match after the
    first adds a small boost up to a cap, and a passed checksum adds a fixed
    boost. The result is clamped to 1.0 and rounded to two decimals.

    Args:
        kind: Whether the pattern is regex or keyword based
        match_count: Number of accepted matches, at least 1
        validated: Whether a checksum validator confirmed the matches

    Returns:
        Confidence in [0, 1].

    """
    base = REGEX_BASE_CONFIDENCE if kind is PatternKind.REGEX else KEYWORD_BASE_CONFIDENCE
    match_boost = min(max(match_count - 1, 0) * ADDITIONAL_MATCH_BOOST, MAX_MATCH_BOOST)
    validation_boost = VALIDATION_BOOST if validated else 0.0
    return round(min(base + match_boost + validation_boost, 1.0), 2)
