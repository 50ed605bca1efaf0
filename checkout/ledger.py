"""
Checkout Service — 決済台帳 (Payment Ledger)

イベントストア + リードモデルの組み合わせ。

  - イベントストア: transaction_id ごとにイベントをバージョン付きで追記する。
    expected_version による楽観的ロックで同時書き込みを検知する。
  - リードモデル: イベントを投影(Projection)した PaymentRecord。
    一覧・参照クエリはこちらを読む。

レコードは削除されない。変更されるのは返金時の status / refunded_at のみ。
"""

from datetime import datetime, timezone
from typing import Protocol

from pydantic import BaseModel

from .aggregate import PaymentAggregate, PaymentStatus
from .catalog import Money
from .errors import ConcurrencyConflict

AGGREGATE_TYPE = "Payment"


class PaymentRecord(BaseModel):
    id: int
    transaction_id: str
    product_id: int
    product_name: str
    quantity: int
    amount: Money
    email: str | None = None
    status: PaymentStatus
    timestamp: datetime
    refunded_at: datetime | None = None

    @classmethod
    def from_aggregate(cls, record_id: int, agg: PaymentAggregate) -> "PaymentRecord":
        return cls(
            id=record_id,
            transaction_id=agg.transaction_id,
            product_id=agg.product_id,
            product_name=agg.product_name,
            quantity=agg.quantity,
            amount=agg.amount,
            email=agg.email,
            status=agg.status,
            timestamp=agg.timestamp,
            refunded_at=agg.refunded_at,
        )


class PaymentLedger(Protocol):
    """台帳ストアのインターフェース（インメモリ / SQL を差し替え可能）"""

    async def append_event(
        self,
        transaction_id: str,
        event_type: str,
        event_data: dict,
        expected_version: int,
    ) -> int: ...

    async def load_events(self, transaction_id: str) -> list[dict]: ...

    async def load_all_events(self) -> list[dict]: ...

    async def get(self, transaction_id: str) -> PaymentRecord | None: ...

    async def list_all(self) -> list[PaymentRecord]: ...


class InMemoryLedger:
    def __init__(self) -> None:
        self._streams: dict[str, list[dict]] = {}
        self._log: list[dict] = []
        # dict は挿入順を保つので、そのまま台帳順になる
        self._records: dict[str, PaymentRecord] = {}

    async def append_event(
        self,
        transaction_id: str,
        event_type: str,
        event_data: dict,
        expected_version: int,
    ) -> int:
        """
        イベントを追記し、リードモデルへ投影する。

        現在のバージョンが expected_version と異なれば ConcurrencyConflict。
        """
        stream = self._streams.get(transaction_id, [])
        current_version = stream[-1]["version"] if stream else 0
        if current_version != expected_version:
            raise ConcurrencyConflict(transaction_id, expected_version, current_version)

        new_version = expected_version + 1
        event = {
            "aggregate_id": transaction_id,
            "aggregate_type": AGGREGATE_TYPE,
            "event_type": event_type,
            "event_data": dict(event_data),
            "version": new_version,
            "created_at": datetime.now(timezone.utc),
        }
        self._streams.setdefault(transaction_id, []).append(event)
        self._log.append(event)
        self._project(transaction_id)
        return new_version

    def _project(self, transaction_id: str) -> None:
        agg = PaymentAggregate.from_events(self._streams[transaction_id])
        existing = self._records.get(transaction_id)
        record_id = existing.id if existing else len(self._records) + 1
        self._records[transaction_id] = PaymentRecord.from_aggregate(record_id, agg)

    async def load_events(self, transaction_id: str) -> list[dict]:
        return [_copy_event(e) for e in self._streams.get(transaction_id, [])]

    async def load_all_events(self) -> list[dict]:
        return [_copy_event(e) for e in self._log]

    async def get(self, transaction_id: str) -> PaymentRecord | None:
        record = self._records.get(transaction_id)
        return record.model_copy() if record else None

    async def list_all(self) -> list[PaymentRecord]:
        return [r.model_copy() for r in self._records.values()]


def _copy_event(event: dict) -> dict:
    return {**event, "event_data": dict(event["event_data"])}
