"""Romanian phone number normalization."""

import re

from clinic_confirm.core.exceptions import InvalidPhoneNumber

_SEPARATORS = re.compile(r"[\s().-]")
_NATIONAL_DIGITS = re.compile(r"^\d{9}$")

# Prefixes that may precede the 9 national digits
_PREFIXES = ("+40", "40", "0")


def normalize_romanian_phone(value: str) -> str:
    """
    Normalize a Romanian phone number to E.164 (``+40`` plus 9 digits).

    Accepts ``+40...``, ``40...`` and ``0...`` forms with spaces, dots,
    dashes or parentheses as separators.

    Raises:
        InvalidPhoneNumber: If the value is empty or not a Romanian number
    """
    raw = _SEPARATORS.sub("", value.strip())
    if not raw:
        raise InvalidPhoneNumber("Phone number is empty")

    for prefix in _PREFIXES:
        if raw.startswith(prefix):
            digits = raw[len(prefix):]
            if _NATIONAL_DIGITS.match(digits):
                return f"+40{digits}"
            break

    raise InvalidPhoneNumber(f"Invalid Romanian phone number: {value}")
