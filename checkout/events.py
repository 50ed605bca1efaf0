"""
Checkout Service — イベント定義

決済ドメインで発生した事実(イベント)。過去形で命名し、不変として扱う。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class PaymentCompleted(BaseModel):
    """決済が完了した（ゲートウェイ承認 + 在庫確定）"""
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    product_id: int
    product_name: str
    quantity: int
    amount: Decimal
    email: str | None
    timestamp: datetime


class PaymentRefunded(BaseModel):
    """決済が返金された（在庫は戻される）"""
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    product_id: int
    quantity: int
    timestamp: datetime
