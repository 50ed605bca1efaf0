"""
Checkout Service — 決済リクエストの検証

純粋関数。すべてのルールを独立にチェックし、違反メッセージを全件返す
（最初の違反で打ち切らない）。

有効期限は書式 (MM/YY) のみ確認する。期限切れや Luhn チェックは行わない。
"""

import re
from decimal import Decimal

EXPIRY_DATE_PATTERN = re.compile(r"[0-9]{2}/[0-9]{2}")

CARD_NUMBER_LENGTH = 16
CVV_LENGTH = 3


def validate_payment(
    amount: Decimal | None,
    card_number: str | None,
    cvv: str | None,
    expiry_date: str | None,
) -> list[str]:
    """違反メッセージのリストを返す。空なら有効。"""
    errors: list[str] = []

    if not amount or amount <= 0:
        errors.append("Invalid amount")

    if not card_number or len(card_number) != CARD_NUMBER_LENGTH:
        errors.append("Invalid card number")

    if not cvv or len(cvv) != CVV_LENGTH:
        errors.append("Invalid CVV")

    if not expiry_date or not EXPIRY_DATE_PATTERN.fullmatch(expiry_date):
        errors.append("Invalid expiry date format (MM/YY)")

    return errors
