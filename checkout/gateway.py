"""
Checkout Service — 決済ゲートウェイ (シミュレーター)

外部の決済ネットワーク呼び出しを模擬する。
  - 固定の遅延（ネットワークレイテンシ）の後に結果を返す
  - 承認率 95% で承認、それ以外は拒否（金額・カード情報とは無関係）
  - 例外は投げない。失敗は approved=False だけで表現する

PaymentGateway は差し替え可能なインターフェース。テストでは決定的な
スタブを注入してランダム性を排除する。
"""

import asyncio
import random
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

APPROVED_MESSAGE = "Payment processed successfully"
DECLINED_MESSAGE = "Payment failed"

_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class CardDetails:
    card_number: str | None
    cvv: str | None
    expiry_date: str | None


@dataclass(frozen=True)
class GatewayResult:
    approved: bool
    transaction_id: str
    message: str


class PaymentGateway(Protocol):
    async def charge(self, amount: Decimal, card: CardDetails) -> GatewayResult: ...


def generate_transaction_id() -> str:
    """TXN-<エポックミリ秒>-<ランダム 9 文字> 形式の取引 ID を生成する。"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"TXN-{time.time_ns() // 1_000_000}-{suffix}"


class SimulatedGateway:
    def __init__(
        self,
        delay: float = 1.0,
        approval_rate: float = 0.95,
        rng: random.Random | None = None,
    ) -> None:
        self.delay = delay
        self.approval_rate = approval_rate
        self._rng = rng or random.Random()
        self.calls = 0

    async def charge(self, amount: Decimal, card: CardDetails) -> GatewayResult:
        self.calls += 1
        await asyncio.sleep(self.delay)

        approved = self._rng.random() < self.approval_rate
        return GatewayResult(
            approved=approved,
            transaction_id=generate_transaction_id(),
            message=APPROVED_MESSAGE if approved else DECLINED_MESSAGE,
        )
