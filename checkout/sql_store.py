"""
Checkout Service — SQL ストア (SQLAlchemy async)

CatalogStore / PaymentLedger の SQL 実装。DATABASE_URL が設定されている場合に
インメモリ実装の代わりに使う。

  products             … 商品カタログ（stock >= 0 を CHECK 制約でも保証）
  event_store          … 決済イベント。(aggregate_id, version) の UNIQUE 制約で
                         楽観的ロックを実現する
  payments_read_model  … イベントから投影した決済レコード

日時は ISO 8601 文字列、金額は文字列で保存する（DB 間で型の差が出ないように）。
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from .aggregate import PaymentStatus
from .catalog import Product
from .errors import ConcurrencyConflict, InsufficientStock, ProductNotFound
from .ledger import AGGREGATE_TYPE, PaymentRecord


def _serial_column(engine: AsyncEngine) -> str:
    if engine.dialect.name == "postgresql":
        return "SERIAL PRIMARY KEY"
    return "INTEGER PRIMARY KEY"


async def init_schema(engine: AsyncEngine) -> None:
    """テーブルが無ければ作成する。"""
    serial = _serial_column(engine)
    statements = [
        """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            price TEXT NOT NULL,
            stock INTEGER NOT NULL CHECK (stock >= 0)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS event_store (
            seq {serial},
            aggregate_id TEXT NOT NULL,
            aggregate_type TEXT NOT NULL,
            event_type TEXT NOT NULL,
            event_data TEXT NOT NULL,
            version INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE (aggregate_id, version)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS payments_read_model (
            id {serial},
            transaction_id TEXT NOT NULL UNIQUE,
            product_id INTEGER NOT NULL,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            amount TEXT NOT NULL,
            email TEXT,
            status TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            refunded_at TEXT
        )
        """,
    ]
    async with engine.begin() as conn:
        for statement in statements:
            await conn.execute(text(statement))


def _session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Catalog ─────────────────────────────────────


def _row_to_product(row) -> Product:
    return Product(id=row.id, name=row.name, price=Decimal(row.price), stock=row.stock)


class SqlCatalog:
    def __init__(self, engine: AsyncEngine) -> None:
        self.async_session = _session_factory(engine)

    async def get(self, product_id: int) -> Product | None:
        async with self.async_session() as session:
            return await self._get(session, product_id)

    async def _get(self, session: AsyncSession, product_id: int) -> Product | None:
        result = await session.execute(
            text("SELECT id, name, price, stock FROM products WHERE id = :id"),
            {"id": product_id},
        )
        row = result.fetchone()
        return _row_to_product(row) if row else None

    async def list_all(self) -> list[Product]:
        async with self.async_session() as session:
            result = await session.execute(
                text("SELECT id, name, price, stock FROM products ORDER BY id"),
            )
            return [_row_to_product(row) for row in result.fetchall()]

    async def add(self, product: Product) -> None:
        async with self.async_session() as session:
            await session.execute(
                text("""
                    INSERT INTO products (id, name, price, stock)
                    VALUES (:id, :name, :price, :stock)
                """),
                {
                    "id": product.id,
                    "name": product.name,
                    "price": str(product.price),
                    "stock": product.stock,
                },
            )
            await session.commit()

    async def adjust_stock(self, product_id: int, delta: int) -> Product:
        """
        在庫数を delta だけ増減する。

        WHERE 句で結果が 0 以上になる行だけを更新するので、
        在庫がマイナスになる更新は 0 行更新として検知できる。
        """
        async with self.async_session() as session:
            result = await session.execute(
                text("""
                    UPDATE products
                    SET stock = stock + :delta
                    WHERE id = :id AND stock + :delta >= 0
                """),
                {"delta": delta, "id": product_id},
            )
            if result.rowcount == 0:
                product = await self._get(session, product_id)
                await session.rollback()
                if product is None:
                    raise ProductNotFound(product_id)
                raise InsufficientStock(product_id, -delta, product.stock)

            product = await self._get(session, product_id)
            await session.commit()
            return product


# ── Ledger ──────────────────────────────────────


def _row_to_event(row) -> dict:
    return {
        "aggregate_id": row.aggregate_id,
        "aggregate_type": row.aggregate_type,
        "event_type": row.event_type,
        "event_data": json.loads(row.event_data),
        "version": row.version,
        "created_at": datetime.fromisoformat(row.created_at),
    }


def _row_to_record(row) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        transaction_id=row.transaction_id,
        product_id=row.product_id,
        product_name=row.product_name,
        quantity=row.quantity,
        amount=Decimal(row.amount),
        email=row.email,
        status=PaymentStatus(row.status),
        timestamp=datetime.fromisoformat(row.timestamp),
        refunded_at=datetime.fromisoformat(row.refunded_at) if row.refunded_at else None,
    )


_RECORD_COLUMNS = """
    id, transaction_id, product_id, product_name, quantity,
    amount, email, status, timestamp, refunded_at
"""

_EVENT_COLUMNS = "aggregate_id, aggregate_type, event_type, event_data, version, created_at"


class SqlLedger:
    def __init__(self, engine: AsyncEngine) -> None:
        self.async_session = _session_factory(engine)

    async def append_event(
        self,
        transaction_id: str,
        event_type: str,
        event_data: dict,
        expected_version: int,
    ) -> int:
        """
        イベントを追記し、同じトランザクション内でリードモデルも更新する。

        同じ aggregate_id + version が既に存在すると UNIQUE 制約違反になる
        → ConcurrencyConflict として通知する。
        """
        new_version = expected_version + 1
        async with self.async_session() as session:
            current_version = await self._current_version(session, transaction_id)
            if current_version != expected_version:
                raise ConcurrencyConflict(transaction_id, expected_version, current_version)

            try:
                await session.execute(
                    text("""
                        INSERT INTO event_store
                            (aggregate_id, aggregate_type, event_type, event_data, version, created_at)
                        VALUES
                            (:agg_id, :agg_type, :evt_type, :evt_data, :version, :now)
                    """),
                    {
                        "agg_id": transaction_id,
                        "agg_type": AGGREGATE_TYPE,
                        "evt_type": event_type,
                        "evt_data": json.dumps(event_data, default=str),
                        "version": new_version,
                        "now": datetime.now(timezone.utc).isoformat(),
                    },
                )
                await self._project(session, event_type, event_data)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                actual = await self._current_version(session, transaction_id)
                raise ConcurrencyConflict(transaction_id, expected_version, actual) from e
        return new_version

    async def _current_version(self, session: AsyncSession, transaction_id: str) -> int:
        result = await session.execute(
            text("SELECT MAX(version) FROM event_store WHERE aggregate_id = :agg_id"),
            {"agg_id": transaction_id},
        )
        return result.scalar() or 0

    async def _project(self, session: AsyncSession, event_type: str, data: dict) -> None:
        """イベントタイプに応じてリードモデルを更新する。"""
        handler = {
            "PaymentCompleted": self._project_payment_completed,
            "PaymentRefunded": self._project_payment_refunded,
        }.get(event_type)
        if handler:
            await handler(session, data)

    async def _project_payment_completed(self, session: AsyncSession, data: dict) -> None:
        await session.execute(
            text("""
                INSERT INTO payments_read_model
                    (transaction_id, product_id, product_name, quantity,
                     amount, email, status, timestamp)
                VALUES
                    (:transaction_id, :product_id, :product_name, :quantity,
                     :amount, :email, :status, :timestamp)
            """),
            {
                "transaction_id": data["transaction_id"],
                "product_id": data["product_id"],
                "product_name": data["product_name"],
                "quantity": data["quantity"],
                "amount": str(data["amount"]),
                "email": data.get("email"),
                "status": PaymentStatus.COMPLETED.value,
                "timestamp": str(data["timestamp"]),
            },
        )

    async def _project_payment_refunded(self, session: AsyncSession, data: dict) -> None:
        await session.execute(
            text("""
                UPDATE payments_read_model
                SET status = :status, refunded_at = :refunded_at
                WHERE transaction_id = :transaction_id
            """),
            {
                "status": PaymentStatus.REFUNDED.value,
                "refunded_at": str(data["timestamp"]),
                "transaction_id": data["transaction_id"],
            },
        )

    async def load_events(self, transaction_id: str) -> list[dict]:
        async with self.async_session() as session:
            result = await session.execute(
                text(f"""
                    SELECT {_EVENT_COLUMNS}
                    FROM event_store
                    WHERE aggregate_id = :agg_id
                    ORDER BY version ASC
                """),
                {"agg_id": transaction_id},
            )
            return [_row_to_event(row) for row in result.fetchall()]

    async def load_all_events(self) -> list[dict]:
        async with self.async_session() as session:
            result = await session.execute(
                text(f"SELECT {_EVENT_COLUMNS} FROM event_store ORDER BY seq ASC"),
            )
            return [_row_to_event(row) for row in result.fetchall()]

    async def get(self, transaction_id: str) -> PaymentRecord | None:
        async with self.async_session() as session:
            result = await session.execute(
                text(f"""
                    SELECT {_RECORD_COLUMNS}
                    FROM payments_read_model
                    WHERE transaction_id = :transaction_id
                """),
                {"transaction_id": transaction_id},
            )
            row = result.fetchone()
            return _row_to_record(row) if row else None

    async def list_all(self) -> list[PaymentRecord]:
        async with self.async_session() as session:
            result = await session.execute(
                text(f"SELECT {_RECORD_COLUMNS} FROM payments_read_model ORDER BY id ASC"),
            )
            return [_row_to_record(row) for row in result.fetchall()]
