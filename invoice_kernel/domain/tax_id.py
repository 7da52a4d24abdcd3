"""
Spanish tax identifier checks (``invoice_kernel.domain.tax_id``).

Responsibility
--------------
Format and control-character validation of supplier tax identifiers:
NIF (eight digits and a letter), NIE (X/Y/Z prefix) and CIF (entity
letter, seven digits and a control digit or letter).  OCR consolidation
uses it to discard misread identifiers.

Nothing here checks that the identifier is registered.
"""

from __future__ import annotations

import re
from typing import Any

_NIF_LETTERS = "TRWAGMYFPDXBNJZSQVHLCKE"
_CIF_CONTROL_LETTERS = "JABCDEFGHI"
_CIF_ENTITY_LETTERS = "ABCDEFGHJNPQRSUVW"
_NIE_PREFIXES = {"X": "0", "Y": "1", "Z": "2"}

_SEPARATORS = re.compile(r"[\s.\-]")
_EIGHT_DIGITS = re.compile(r"[0-9]{8}")
_SEVEN_DIGITS = re.compile(r"[0-9]{7}")


def normalize_tax_id(value: str) -> str:
    """Upper-case and strip spaces, dots and dashes."""
    return _SEPARATORS.sub("", value).upper()


def _cif_control_digit(digits: str) -> int:
    total = 0
    for position, char in enumerate(digits):
        digit = int(char)
        if position % 2 == 0:
            doubled = digit * 2
            total += doubled // 10 + doubled % 10
        else:
            total += digit
    unit = total % 10
    return 0 if unit == 0 else 10 - unit


def is_valid_tax_id(value: Any) -> bool:
    """True when ``value`` is a well-formed NIF, NIE or CIF."""
    if not isinstance(value, str) or not value.strip():
        return False

    tax_id = normalize_tax_id(value)
    if len(tax_id) != 9:
        return False

    first = tax_id[0]
    if first in _NIE_PREFIXES or first.isdigit():
        number = _NIE_PREFIXES.get(first, first) + tax_id[1:8]
        if not _EIGHT_DIGITS.fullmatch(number):
            return False
        return _NIF_LETTERS[int(number) % 23] == tax_id[8]

    if first in _CIF_ENTITY_LETTERS:
        digits = tax_id[1:8]
        if not _SEVEN_DIGITS.fullmatch(digits):
            return False
        control = _cif_control_digit(digits)
        return tax_id[8] in (str(control), _CIF_CONTROL_LETTERS[control])

    return False
