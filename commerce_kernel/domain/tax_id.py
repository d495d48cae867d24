"""
Chilean RUT (tax id) validation and normalization.

The check digit is computed over the body digits from right to left with
the repeating multipliers 2..7; ``dv = 11 - (sum mod 11)`` where 11 maps
to ``0`` and 10 maps to ``K``.  Normalized form is ``12345678-5``.
"""

import re

from commerce_kernel.exceptions import InvalidTaxIdError

_RUT_PATTERN = re.compile(r"^\d{7,8}[0-9K]$")


def clean_tax_id(value: str) -> str:
    """Strip dots, hyphens and whitespace and upper-case the check digit."""
    return re.sub(r"[.\-\s]", "", value or "").upper()


def compute_check_digit(body: str) -> str:
    total = 0
    multiplier = 2
    for digit in reversed(body):
        total += int(digit) * multiplier
        multiplier = 2 if multiplier == 7 else multiplier + 1
    dv = 11 - (total % 11)
    if dv == 11:
        return "0"
    if dv == 10:
        return "K"
    return str(dv)


def is_valid_tax_id(value: str) -> bool:
    cleaned = clean_tax_id(value)
    if not _RUT_PATTERN.match(cleaned):
        return False
    return compute_check_digit(cleaned[:-1]) == cleaned[-1]


def normalize_tax_id(value: str) -> str:
    """
    Validate and return the canonical ``body-DV`` form.

    Raises:
        InvalidTaxIdError: On a bad format or a wrong check digit.
    """
    if not isinstance(value, str) or not is_valid_tax_id(value):
        raise InvalidTaxIdError(str(value))
    cleaned = clean_tax_id(value)
    return f"{cleaned[:-1]}-{cleaned[-1]}"
