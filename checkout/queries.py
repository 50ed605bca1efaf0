"""
Checkout Service — クエリハンドラ (Read 側)

状態を変更しない読み取り専用の操作。ストアはコピーを返すので、
返り値を書き換えてもカタログや台帳には影響しない。
"""

from .catalog import CatalogStore, Product
from .ledger import PaymentLedger, PaymentRecord


async def list_products(catalog: CatalogStore) -> list[Product]:
    """全商品を ID 順に返す。"""
    return await catalog.list_all()


async def get_product(catalog: CatalogStore, product_id: int) -> Product | None:
    return await catalog.get(product_id)


async def list_payments(ledger: PaymentLedger) -> list[PaymentRecord]:
    """全決済レコードを台帳順（作成順）に返す。"""
    return await ledger.list_all()


async def get_payment(ledger: PaymentLedger, transaction_id: str) -> PaymentRecord | None:
    return await ledger.get(transaction_id)


async def list_events(ledger: PaymentLedger) -> list[dict]:
    """すべてのイベントを追記順に返す（デバッグ・学習用）。"""
    return await ledger.load_all_events()
