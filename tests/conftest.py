"""
Pytest configuration and fixtures.
"""
import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from checkout.catalog import InMemoryCatalog, Product
from checkout.commands import TransactionManager
from checkout.gateway import (
    APPROVED_MESSAGE,
    DECLINED_MESSAGE,
    CardDetails,
    GatewayResult,
    generate_transaction_id,
)
from checkout.ledger import InMemoryLedger
from checkout.sql_store import init_schema

VALID_CARD = {
    "card_number": "4111111111111111",
    "cvv": "123",
    "expiry_date": "12/27",
}


class StubGateway:
    """決定的なゲートウェイ。呼び出し回数と請求額を記録する。"""

    def __init__(self, approved: bool = True, delay: float = 0.0) -> None:
        self.approved = approved
        self.delay = delay
        self.calls = 0
        self.charged: list[Decimal] = []

    async def charge(self, amount: Decimal, card: CardDetails) -> GatewayResult:
        self.calls += 1
        self.charged.append(amount)
        if self.delay:
            await asyncio.sleep(self.delay)
        return GatewayResult(
            approved=self.approved,
            transaction_id=generate_transaction_id(),
            message=APPROVED_MESSAGE if self.approved else DECLINED_MESSAGE,
        )


class RecordingPublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    async def publish(self, event_type: str, data: dict) -> None:
        self.published.append((event_type, data))


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(id=1, name="Laptop", price=Decimal("899.99"), stock=10),
        Product(id=2, name="Mouse", price=Decimal("49.99"), stock=1),
    ]


@pytest.fixture
def catalog(products: list[Product]) -> InMemoryCatalog:
    return InMemoryCatalog(products)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def manager(
    catalog: InMemoryCatalog,
    ledger: InMemoryLedger,
    gateway: StubGateway,
    publisher: RecordingPublisher,
) -> TransactionManager:
    return TransactionManager(catalog, ledger, gateway, publisher)


@pytest_asyncio.fixture
async def sql_engine():
    """インメモリ SQLite (全セッションで同じ接続を共有する)"""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_schema(engine)
    yield engine
    await engine.dispose()
