"""
Checkout Service — 商品カタログ (Catalog)

読み取り中心の商品ストア。在庫数 (stock) の変更は adjust_stock だけが行い、
呼び出し元は TransactionManager のコミット・返金ステップに限られる。

不変条件: stock >= 0 （どの操作の後でも在庫がマイナスにならない）
"""

from decimal import Decimal
from typing import Annotated, Protocol

from pydantic import BaseModel, Field, PlainSerializer

from .errors import InsufficientStock, ProductNotFound

# JSON では数値として出力する（内部計算は Decimal のまま）
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Product(BaseModel):
    id: int
    name: str
    price: Money = Field(gt=0)
    stock: int = Field(ge=0)


# 初期データ
SEED_PRODUCTS = [
    Product(id=1, name="Laptop", price=Decimal("999.99"), stock=10),
    Product(id=2, name="Smartphone", price=Decimal("599.99"), stock=25),
    Product(id=3, name="Headphones", price=Decimal("149.99"), stock=50),
    Product(id=4, name="Keyboard", price=Decimal("79.99"), stock=30),
    Product(id=5, name="Mouse", price=Decimal("49.99"), stock=40),
]


class CatalogStore(Protocol):
    """カタログストアのインターフェース（インメモリ / SQL を差し替え可能）"""

    async def get(self, product_id: int) -> Product | None: ...

    async def list_all(self) -> list[Product]: ...

    async def add(self, product: Product) -> None: ...

    async def adjust_stock(self, product_id: int, delta: int) -> Product: ...


class InMemoryCatalog:
    """
    プロセス内の dict に商品を保持するカタログ。

    読み取りはコピーを返すので、呼び出し側が返り値を書き換えても
    ストアの状態は変わらない。
    """

    def __init__(self, products: list[Product] | None = None) -> None:
        self._products: dict[int, Product] = {}
        for product in products or []:
            self._products[product.id] = product.model_copy()

    async def get(self, product_id: int) -> Product | None:
        product = self._products.get(product_id)
        return product.model_copy() if product else None

    async def list_all(self) -> list[Product]:
        return [self._products[pid].model_copy() for pid in sorted(self._products)]

    async def add(self, product: Product) -> None:
        self._products[product.id] = product.model_copy()

    async def adjust_stock(self, product_id: int, delta: int) -> Product:
        """在庫数を delta だけ増減する。結果がマイナスになる場合は拒否する。"""
        product = self._products.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        if product.stock + delta < 0:
            raise InsufficientStock(product_id, -delta, product.stock)
        product.stock += delta
        return product.model_copy()


async def seed_catalog(catalog: CatalogStore, products: list[Product]) -> None:
    """未登録の商品だけを追加する（再起動時に二重登録しない）。"""
    for product in products:
        if await catalog.get(product.id) is None:
            await catalog.add(product)
