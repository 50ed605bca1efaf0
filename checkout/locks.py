"""
Checkout Service — キー単位の排他制御

在庫は「チェック → (ゲートウェイ呼び出しで中断) → 減算」の間に
共有状態として読み書きされる。同じ商品に対するチェックアウトが
この区間で交差しないよう、商品 ID ごとに asyncio.Lock を保持する。

ロックは必要になった時点で作成し、保持・待機しているタスクが
いなくなったら破棄する。単一プロセス・単一イベントループが前提。
"""

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

