"""
Checkout Service — コマンドハンドラ (Transaction Manager)

状態を変更する 2 つのコマンドを扱う。

  チェックアウト:
  ┌──────────────────────────────────────────────────────────┐
  │  [商品ロック取得]                                          │
  │  1. カタログから商品を取得        → 無ければ ProductNotFound │
  │  2. 在庫チェック                  → 不足なら InsufficientStock│
  │  3. 金額計算 (単価 × 数量)                                 │
  │  4. 入力検証                      → 違反なら ValidationFailed │
  │  5. 決済ゲートウェイ呼び出し (ここで中断する)               │
  │     ├─ 拒否 → PaymentDeclined (何も変更しない)             │
  │     └─ 承認 → 在庫減算 + PaymentCompleted を台帳に追記      │
  │  [商品ロック解放]                                          │
  └──────────────────────────────────────────────────────────┘

  1〜4 はすべて無料の同期チェック。これらが通るまでゲートウェイは
  呼ばない（受け付けられない注文に課金しないため）。
  在庫はゲートウェイ承認前には減らさないので、拒否時の補償は不要。

  返金:
    [取引ロック取得] → 集約を再構築 → 返金済みなら AlreadyRefunded
    → [商品ロック] 在庫を戻す（商品が消えていればスキップ） → PaymentRefunded を追記

  在庫と台帳を書き換えるコミット部分は、呼び出し元がキャンセルされても
  最後まで実行する（途中で止まると在庫と台帳が食い違うため）。

ロックの取得順は常に 取引 → 商品。チェックアウトは取引ロックを取らない。
"""

import asyncio
from collections.abc import Awaitable
from datetime import datetime, timezone

from .aggregate import PaymentAggregate
from .catalog import CatalogStore
from .errors import (
    AlreadyRefunded,
    InsufficientStock,
    PaymentDeclined,
    PaymentNotFound,
    ProductNotFound,
    ValidationFailed,
)
from .events import PaymentCompleted, PaymentRefunded
from .gateway import CardDetails, PaymentGateway
from .ledger import PaymentLedger, PaymentRecord
from .locks import KeyedLock
from .publisher import EventPublisher
from .validator import validate_payment


class TransactionManager:
    def __init__(
        self,
        catalog: CatalogStore,
        ledger: PaymentLedger,
        gateway: PaymentGateway,
        publisher: EventPublisher | None = None,
    ) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self.gateway = gateway
        self.publisher = publisher
        self._product_locks = KeyedLock()
        self._transaction_locks = KeyedLock()

    async def create_payment(
        self,
        product_id: int,
        quantity: int,
        card_number: str | None,
        cvv: str | None,
        expiry_date: str | None,
        email: str | None,
    ) -> PaymentRecord:
        """
        チェックアウトコマンド

        商品ロックを在庫チェックから在庫減算まで保持するので、
        最後の 1 個に対する同時リクエストは片方だけが成功する。
        """
        async with self._product_locks.hold(product_id):
            product = await self.catalog.get(product_id)
            if product is None:
                raise ProductNotFound(product_id)

            if product.stock < quantity:
                raise InsufficientStock(product_id, quantity, product.stock)

            amount = product.price * quantity

            violations = validate_payment(amount, card_number, cvv, expiry_date)
            if violations:
                raise ValidationFailed(violations)

            result = await self.gateway.charge(
                amount, CardDetails(card_number, cvv, expiry_date)
            )
            if not result.approved:
                raise PaymentDeclined(result.message)

            # 承認済み → 在庫確定と台帳への記録
            event = PaymentCompleted(
                transaction_id=result.transaction_id,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                amount=amount,
                email=email,
                timestamp=datetime.now(timezone.utc),
            )
            event_data = event.model_dump(mode="json")

            await _run_to_completion(
                self._commit_payment(result.transaction_id, product.id, quantity, event_data)
            )

        await self._publish("PaymentCompleted", event_data)
        return await self.ledger.get(result.transaction_id)

    async def refund_payment(self, transaction_id: str) -> PaymentRecord:
        """
        返金コマンド

        返金は一方向のみ。同じ取引への同時返金は取引ロックで直列化され、
        2 件目は AlreadyRefunded になる。
        """
        async with self._transaction_locks.hold(transaction_id):
            events = await self.ledger.load_events(transaction_id)
            if not events:
                raise PaymentNotFound(transaction_id)

            agg = PaymentAggregate.from_events(events)
            if agg.is_refunded:
                raise AlreadyRefunded(transaction_id)

            event = PaymentRefunded(
                transaction_id=transaction_id,
                product_id=agg.product_id,
                quantity=agg.quantity,
                timestamp=datetime.now(timezone.utc),
            )
            event_data = event.model_dump(mode="json")

            async with self._product_locks.hold(agg.product_id):
                await _run_to_completion(self._commit_refund(agg, event_data))

        await self._publish("PaymentRefunded", event_data)
        return await self.ledger.get(transaction_id)

    async def _commit_payment(
        self, transaction_id: str, product_id: int, quantity: int, event_data: dict
    ) -> None:
        """在庫減算と PaymentCompleted の追記。追記に失敗したら在庫減算を戻す。"""
        await self.catalog.adjust_stock(product_id, -quantity)
        try:
            await self.ledger.append_event(transaction_id, "PaymentCompleted", event_data, 0)
        except BaseException:
            # 補償: 台帳に記録できなかった在庫減算を戻す
            await self.catalog.adjust_stock(product_id, quantity)
            raise

    async def _commit_refund(self, agg: PaymentAggregate, event_data: dict) -> None:
        """
        在庫の戻しと PaymentRefunded の追記。

        在庫を先に戻すので、在庫の更新に失敗した返金は台帳上も未返金のまま残り、
        再試行できる。追記に失敗したら戻した在庫を再び減らす。
        """
        # 商品が削除済みなら在庫の戻しはスキップ（返金自体は成功）
        restocked = await self.catalog.get(agg.product_id) is not None
        if restocked:
            await self.catalog.adjust_stock(agg.product_id, agg.quantity)
        try:
            await self.ledger.append_event(
                agg.transaction_id, "PaymentRefunded", event_data, agg.version
            )
        except BaseException:
            if restocked:
                await self.catalog.adjust_stock(agg.product_id, -agg.quantity)
            raise

    async def _publish(self, event_type: str, data: dict) -> None:
        if self.publisher is not None:
            await self.publisher.publish(event_type, data)


async def _run_to_completion(coro: Awaitable[None]) -> None:
    """
    呼び出し元がキャンセルされても coro を最後まで実行する。

    キャンセルは coro の完了を待ってから呼び出し元へ伝えるので、
    呼び出し元が持つロックもコミットが終わるまで解放されない。
    """
    task = asyncio.ensure_future(coro)
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait({task})
        raise
