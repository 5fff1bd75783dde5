"""Checksum validators applied to candidate pattern matches."""

import re
from collections.abc import Callable
from enum import Enum

IBAN_MIN_LENGTH = 5
IBAN_MAX_LENGTH = 34
CARD_MIN_DIGITS = 13
CARD_MAX_DIGITS = 19

_IBAN_FORMAT = re.compile(r"[A-Z]{2}\d{2}[A-Z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_CARD_SEPARATORS = re.compile(r"[\s-]+")


class ValidatorName(Enum):
    """Named checksum validators a pattern may declare."""

    IBAN = "iban"
    LUHN = "luhn"


def validate_iban(value: str) -> bool:
    """Validate an IBAN with the ISO 7064 Mod 97-10 checksum.

    The numeric form is reduced digit by digit so no big integers are built.

    Args:
        value: Candidate IBAN, optionally containing whitespace, any case

    Returns:
        True when the format is plausible and the remainder is 1.

    """
    iban = _WHITESPACE.sub("", value).upper()
    if not IBAN_MIN_LENGTH <= len(iban) <= IBAN_MAX_LENGTH:
        return False
    if not _IBAN_FORMAT.fullmatch(iban):
        return False

    rearranged = iban[4:] + iban[:4]
    remainder = 0
    for char in rearranged:
        # A=10 ... Z=35; digits map to themselves
        digits = str(int(char, 36))
        for digit in digits:
            remainder = (remainder * 10 + int(digit)) % 97
    return remainder == 1


def validate_luhn(value: str) -> bool:
    """Validate a card number with the Luhn checksum.

    Args:
        value: Candidate number, optionally separated by spaces or hyphens

    Returns:
        True when the number has 13-19 digits and passes the checksum.

    """
    digits = _CARD_SEPARATORS.sub("", value)
    if not digits.isascii() or not digits.isdigit():
        return False
    if not CARD_MIN_DIGITS <= len(digits) <= CARD_MAX_DIGITS:
        return False

    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


VALIDATORS: dict[ValidatorName, Callable[[str], bool]] = {
    ValidatorName.IBAN: validate_iban,
    ValidatorName.LUHN: validate_luhn,
}
