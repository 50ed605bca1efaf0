"""
Checkout Service — 決済集約 (Payment Aggregate)

Event Sourcing では集約の状態を直接保存しない。
イベントをリプレイして現在の状態を復元する。

状態遷移:
    (なし) → COMPLETED  (ゲートウェイ承認)
    COMPLETED → REFUNDED  (返金。一方向のみ)
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from .events import PaymentCompleted, PaymentRefunded


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    REFUNDED = "refunded"


class PaymentAggregate:
    def __init__(self) -> None:
        self.transaction_id: str = ""
        self.product_id: int | None = None
        self.product_name: str = ""
        self.quantity: int = 0
        self.amount: Decimal = Decimal("0")
        self.email: str | None = None
        self.status: PaymentStatus | None = None
        self.timestamp: datetime | None = None
        self.refunded_at: datetime | None = None
        self.version: int = 0

    @property
    def is_refunded(self) -> bool:
        return self.status == PaymentStatus.REFUNDED

    # ── イベント適用メソッド ──────────────────────────

    def apply_payment_completed(self, data: dict) -> None:
        event = PaymentCompleted.model_validate(data)
        self.transaction_id = event.transaction_id
        self.product_id = event.product_id
        self.product_name = event.product_name
        self.quantity = event.quantity
        self.amount = event.amount
        self.email = event.email
        self.timestamp = event.timestamp
        self.status = PaymentStatus.COMPLETED

    def apply_payment_refunded(self, data: dict) -> None:
        event = PaymentRefunded.model_validate(data)
        self.refunded_at = event.timestamp
        self.status = PaymentStatus.REFUNDED

    # ── イベントリプレイ ─────────────────────────────

    def apply_event(self, event_type: str, event_data: dict) -> None:
        handler = {
            "PaymentCompleted": self.apply_payment_completed,
            "PaymentRefunded": self.apply_payment_refunded,
        }.get(event_type)
        if handler:
            handler(event_data)

    @classmethod
    def from_events(cls, events: list[dict]) -> "PaymentAggregate":
        """イベント列から集約を再構築する。"""
        agg = cls()
        for e in events:
            agg.apply_event(e["event_type"], e["event_data"])
            agg.version = e["version"]
        return agg
