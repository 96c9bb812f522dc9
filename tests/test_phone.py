"""Tests for Romanian phone normalization."""

import pytest

from clinic_confirm.core.exceptions import InvalidPhoneNumber
from clinic_confirm.utils.phone import normalize_romanian_phone


@pytest.mark.parametrize(
    "raw",
    [
        "07 123 45 678",
        "0712345678",
        "+40712345678",
        "+40 712 345 678",
        "40712345678",
        "0712.345.678",
        "(0712) 345-678",
        "  0712345678  ",
    ],
)
def test_normalize_accepts_common_forms(raw):
    """Test every accepted notation ends up as E.164."""
    assert normalize_romanian_phone(raw) == "+40712345678"


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "12345", "071234567", "07123456789", "+33612345678", "07a2345678"],
)
def test_normalize_rejects_invalid(raw):
    """Test malformed or foreign numbers are rejected."""
    with pytest.raises(InvalidPhoneNumber):
        normalize_romanian_phone(raw)
