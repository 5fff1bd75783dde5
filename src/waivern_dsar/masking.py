"""Masking policy for values derived from scanned content.

`redact_sample` is the only path by which a value taken from scanned content
may leave the detection engine. Every PII type has exactly one rule, selected
by an exhaustive match so that adding a type without a rule fails type checks.
"""

import re
from enum import Enum
from typing import assert_never

MASK_CONSTANT = "***"
MASK_CHAR = "*"

_YEAR_PATTERN = re.compile(r"(?:19|20)\d{2}")
_IP_SEPARATORS = re.compile(r"([.:])")
_MAC_SEPARATORS = re.compile(r"([:\-.])")


class PIIType(Enum):
    """Kinds of values the masking policy knows how to redact."""

    EMAIL = "email"
    PHONE = "phone"
    IBAN = "iban"
    CREDIT_CARD = "credit_card"
    NAME = "name"
    TAX_ID = "tax_id"
    SSN = "ssn"
    PASSPORT = "passport"
    DATE_OF_BIRTH = "date_of_birth"
    ADDRESS = "address"
    IP_ADDRESS = "ip_address"
    MAC_ADDRESS = "mac_address"
    KEYWORD = "keyword"
    GENERIC = "generic"


def redact_sample(raw_value: str, pii_type: PIIType) -> str:
    """Mask a raw value according to the fixed rule for its PII type.

    The function is pure: the same (value, type) pair always yields the same
    mask. Empty or whitespace-only input always yields ``"***"``.

    Args:
        raw_value: The raw matched value
        pii_type: The PII type that decides which rule applies

    Returns:
        The masked representation, safe to store and display.

    """
    value = raw_value.strip()
    if not value:
        return MASK_CONSTANT

    match pii_type:
        case PIIType.EMAIL:
            masked = _mask_email(value)
        case PIIType.PHONE:
            masked = redact_middle(value, 4, 2)
        case PIIType.IBAN:
            masked = _mask_iban(value)
        case PIIType.CREDIT_CARD:
            masked = _mask_credit_card(value)
        case PIIType.NAME:
            masked = _mask_name(value)
        case PIIType.TAX_ID:
            masked = redact_middle(value, 2, 2)
        case PIIType.SSN:
            masked = redact_middle(value, 0, 4)
        case PIIType.PASSPORT:
            masked = redact_middle(value, 1, 2)
        case PIIType.DATE_OF_BIRTH:
            masked = _mask_date_of_birth(value)
        case PIIType.ADDRESS:
            masked = redact_middle(value, 3, 0)
        case PIIType.IP_ADDRESS:
            masked = _mask_segments(value, _IP_SEPARATORS)
        case PIIType.MAC_ADDRESS:
            masked = _mask_segments(value, _MAC_SEPARATORS)
        case PIIType.KEYWORD:
            masked = f"[{redact_middle(value, 1, 0)}]"
        case PIIType.GENERIC:
            masked = redact_middle(value, 2, 2)
        case _:
            assert_never(pii_type)

    # A rule must never echo the value back, whatever its shape
    if len(value) > len(MASK_CONSTANT) and value in masked:
        return MASK_CONSTANT
    return masked


def redact_middle(value: str, keep_start: int, keep_end: int) -> str:
    """Mask everything between a kept prefix and suffix.

    Whitespace inside the masked region is preserved so the shape of the value
    stays recognisable. Values not longer than the kept parts are fully masked.

    Args:
        value: Value to mask
        keep_start: Number of leading characters to keep
        keep_end: Number of trailing characters to keep

    Returns:
        The masked value.

    """
    if len(value) <= keep_start + keep_end:
        return _mask_chars(value)
    end_index = len(value) - keep_end
    return value[:keep_start] + _mask_chars(value[keep_start:end_index]) + value[end_index:]


def _mask_chars(text: str) -> str:
    return "".join(char if char.isspace() else MASK_CHAR for char in text)


def _mask_email(value: str) -> str:
    local, separator, domain = value.partition("@")
    if not separator or not local or not domain:
        return "***@***.***"
    return f"{local[0]}{MASK_CHAR * max(len(local) - 1, 3)}@{domain}"


def _mask_iban(value: str) -> str:
    compact = re.sub(r"\s+", "", value).upper()
    if len(compact) <= 6:
        return _mask_chars(compact)
    return compact[:2] + MASK_CHAR * (len(compact) - 6) + compact[-4:]


def _mask_credit_card(value: str) -> str:
    digits = re.sub(r"\D", "", value)
    if len(digits) <= 8:
        return _mask_chars(value)
    return f"{digits[:4]} {MASK_CHAR * (len(digits) - 8)} {digits[-4:]}"


def _mask_name(value: str) -> str:
    initials = [f"{part[0].upper()}." for part in value.split() if part[0].isalpha()]
    return " ".join(initials) if initials else MASK_CONSTANT


def _mask_date_of_birth(value: str) -> str:
    year = _YEAR_PATTERN.search(value)
    if year is None:
        return redact_middle(value, 2, 2)
    masked_digits = re.sub(r"\d", MASK_CHAR, value)
    return masked_digits[: year.start()] + year.group() + masked_digits[year.end() :]


def _mask_segments(value: str, separators: re.Pattern[str]) -> str:
    """Keep the first segment of a separated address and mask the rest."""
    parts = separators.split(value)
    if len(parts) < 3:
        return redact_middle(value, 2, 0)
    head, rest = parts[0], parts[1:]
    masked_rest = [
        part if separators.fullmatch(part) else MASK_CHAR * len(part) for part in rest
    ]
    return head + "".join(masked_rest)
