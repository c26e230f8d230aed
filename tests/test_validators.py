import pytest

from cruisemall.shared.validators import (
    format_phone,
    is_valid_mobile_phone,
    is_valid_phone,
    mask_phone_for_log,
    normalize_phone,
    phone_search_variants,
    validate_email,
)


def test_normalize_phone_strips_formatting():
    assert normalize_phone("010-1234-5678") == "01012345678"
    assert normalize_phone(" (02) 123 4567 ") == "021234567"
    assert normalize_phone("---") is None
    assert normalize_phone(None) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("01012345678", "010-1234-5678"),
        ("021234567", "02-123-4567"),
        ("0212345678", "02-1234-5678"),
        ("0311234567", "031-123-4567"),
        ("12345", "12345"),
    ],
)
def test_format_phone(raw, expected):
    assert format_phone(raw) == expected


def test_phone_validity():
    assert is_valid_phone("010-1234-5678")
    assert is_valid_phone("02-123-4567")
    assert not is_valid_phone("1234567890")
    assert not is_valid_phone("0101")
    assert is_valid_mobile_phone("010-9876-5432")
    assert not is_valid_mobile_phone("02-123-4567")


def test_mask_phone_for_log_keeps_prefix_and_suffix():
    assert mask_phone_for_log("010-1234-5678") == "010****5678"
    assert mask_phone_for_log(None) == "(none)"


def test_phone_search_variants_include_hyphenated_form():
    assert phone_search_variants("01012345678") == ["01012345678", "010-1234-5678"]
    assert phone_search_variants("12345") == ["12345"]
    assert phone_search_variants("") == []


def test_validate_email():
    assert validate_email("  Kim@Example.COM ") == "kim@example.com"
    with pytest.raises(ValueError):
        validate_email("not-an-email")
