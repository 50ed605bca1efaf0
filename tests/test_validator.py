"""
Tests for payment request validation.
"""
from decimal import Decimal

import pytest

from checkout.validator import validate_payment

VALID = {
    "amount": Decimal("10.00"),
    "card_number": "4111111111111111",
    "cvv": "123",
    "expiry_date": "12/27",
}


def test_valid_request_has_no_violations() -> None:
    assert validate_payment(**VALID) == []


@pytest.mark.parametrize(
    "field, value, message",
    [
        ("amount", None, "Invalid amount"),
        ("amount", Decimal("0"), "Invalid amount"),
        ("amount", Decimal("-5"), "Invalid amount"),
        ("card_number", None, "Invalid card number"),
        ("card_number", "411111111111111", "Invalid card number"),
        ("card_number", "41111111111111112", "Invalid card number"),
        ("cvv", "", "Invalid CVV"),
        ("cvv", "1234", "Invalid CVV"),
        ("expiry_date", None, "Invalid expiry date format (MM/YY)"),
        ("expiry_date", "1227", "Invalid expiry date format (MM/YY)"),
        ("expiry_date", "12/2027", "Invalid expiry date format (MM/YY)"),
        ("expiry_date", "ab/cd", "Invalid expiry date format (MM/YY)"),
    ],
)
def test_single_violation(field: str, value, message: str) -> None:
    assert validate_payment(**{**VALID, field: value}) == [message]


def test_all_rules_are_checked() -> None:
    """最初の違反で打ち切らず、すべての違反を返す"""
    errors = validate_payment(None, "123", "1", "2027-12")

    assert errors == [
        "Invalid amount",
        "Invalid card number",
        "Invalid CVV",
        "Invalid expiry date format (MM/YY)",
    ]


def test_expiry_format_only() -> None:
    """書式のみ確認する。過去の日付や存在しない月も通る"""
    assert validate_payment(**{**VALID, "expiry_date": "01/99"}) == []
    assert validate_payment(**{**VALID, "expiry_date": "13/00"}) == []


def test_card_number_is_not_checksummed() -> None:
    assert validate_payment(**{**VALID, "card_number": "1234567890123456"}) == []
