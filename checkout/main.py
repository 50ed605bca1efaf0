"""
Checkout Service — FastAPI エントリーポイント

商品カタログの参照、決済の作成・参照・返金を HTTP API として公開する。
コア（commands / queries）はトランスポートに依存しない。この層は
リクエストの受け取り、業務エラーのステータスコード変換、ログ出力のみを担う。

  ┌──────────┐     ┌──────────────┐     ┌────────────────────┐
  │  Client  │────▶│  main.py     │────▶│ TransactionManager │──▶ Gateway
  │          │     │  (HTTP 層)   │     │ queries            │
  └──────────┘     └──────────────┘     └─────────┬──────────┘
                                                  │
                                   ┌──────────────▼──────────────┐
                                   │ Catalog / Ledger            │
                                   │ (インメモリ or SQL)          │
                                   └─────────────────────────────┘

レスポンスは {"success": true, "data": ...} 形式。
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import create_async_engine

from . import queries
from .catalog import SEED_PRODUCTS, InMemoryCatalog, seed_catalog
from .commands import TransactionManager
from .errors import (
    AlreadyRefunded,
    CheckoutError,
    InsufficientStock,
    PaymentDeclined,
    PaymentNotFound,
    ProductNotFound,
    ValidationFailed,
)
from .gateway import SimulatedGateway
from .ledger import InMemoryLedger
from .publisher import RedisEventPublisher
from .sql_store import SqlCatalog, SqlLedger, init_schema

# 未設定ならインメモリストア / イベント発行なし
DATABASE_URL = os.environ.get("DATABASE_URL")
REDIS_URL = os.environ.get("REDIS_URL")
GATEWAY_DELAY_SECONDS = float(os.environ.get("GATEWAY_DELAY_SECONDS", "1.0"))
GATEWAY_APPROVAL_RATE = float(os.environ.get("GATEWAY_APPROVAL_RATE", "0.95"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """起動時にストア・ゲートウェイ・イベント発行を組み立てる。"""
    logging.basicConfig(level=LOG_LEVEL)

    engine = None
    if DATABASE_URL:
        engine = create_async_engine(DATABASE_URL, echo=False)
        await init_schema(engine)
        catalog, ledger = SqlCatalog(engine), SqlLedger(engine)
    else:
        catalog, ledger = InMemoryCatalog(), InMemoryLedger()
    await seed_catalog(catalog, SEED_PRODUCTS)

    redis_pool: aioredis.Redis | None = None
    publisher = None
    if REDIS_URL:
        redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)
        publisher = RedisEventPublisher(redis_pool)

    gateway = SimulatedGateway(
        delay=GATEWAY_DELAY_SECONDS, approval_rate=GATEWAY_APPROVAL_RATE
    )
    app.state.manager = TransactionManager(catalog, ledger, gateway, publisher)
    logger.info(
        "Checkout service started (store=%s, publisher=%s)",
        "sql" if engine else "memory",
        "redis" if publisher else "none",
    )
    yield
    if redis_pool is not None:
        await redis_pool.aclose()
    if engine is not None:
        await engine.dispose()


app = FastAPI(title="Checkout Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_manager(request: Request) -> TransactionManager:
    return request.app.state.manager


# ── Request Models ───────────────────────────────


class CreatePaymentRequest(BaseModel):
    # productId / product_id のどちらでも受け付ける
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: int
    quantity: int
    card_number: str | None = None
    cvv: str | None = None
    expiry_date: str | None = None
    email: str | None = None


# ── 業務エラー → HTTP ステータス ─────────────────

ERROR_STATUS_CODES: dict[type[CheckoutError], int] = {
    ProductNotFound: 404,
    PaymentNotFound: 404,
    InsufficientStock: 400,
    ValidationFailed: 400,
    AlreadyRefunded: 400,
    PaymentDeclined: 402,
}


@app.exception_handler(CheckoutError)
async def handle_checkout_error(request: Request, exc: CheckoutError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    body: dict = {"success": False, "message": exc.message}
    if isinstance(exc, ValidationFailed):
        body["errors"] = exc.violations
    logger.info(
        "%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc.message
    )
    return JSONResponse(status_code=status_code, content=body)


# ── Products ─────────────────────────────────────


@app.get("/api/products")
async def list_products(manager: TransactionManager = Depends(get_manager)):
    """全商品を取得"""
    return {"success": True, "data": await queries.list_products(manager.catalog)}


@app.get("/api/products/{product_id}")
async def get_product(product_id: int, manager: TransactionManager = Depends(get_manager)):
    """商品詳細を取得"""
    product = await queries.get_product(manager.catalog, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return {"success": True, "data": product}


# ── Payments ─────────────────────────────────────


@app.post("/api/payments", status_code=201)
async def create_payment(
    req: CreatePaymentRequest, manager: TransactionManager = Depends(get_manager)
):
    """決済を作成する（在庫チェック → 検証 → ゲートウェイ → 記録）"""
    record = await manager.create_payment(
        product_id=req.product_id,
        quantity=req.quantity,
        card_number=req.card_number,
        cvv=req.cvv,
        expiry_date=req.expiry_date,
        email=req.email,
    )
    logger.info(
        "Payment %s completed: product=%d quantity=%d amount=%s",
        record.transaction_id,
        record.product_id,
        record.quantity,
        record.amount,
    )
    return {
        "success": True,
        "message": "Payment processed successfully",
        "data": record,
    }


@app.get("/api/payments")
async def list_payments(manager: TransactionManager = Depends(get_manager)):
    """決済一覧を取得（作成順）"""
    return {"success": True, "data": await queries.list_payments(manager.ledger)}


@app.get("/api/payments/{transaction_id}")
async def get_payment(transaction_id: str, manager: TransactionManager = Depends(get_manager)):
    """取引 ID で決済を取得"""
    record = await queries.get_payment(manager.ledger, transaction_id)
    if record is None:
        raise PaymentNotFound(transaction_id)
    return {"success": True, "data": record}


@app.post("/api/payments/{transaction_id}/refund")
async def refund_payment(
    transaction_id: str, manager: TransactionManager = Depends(get_manager)
):
    """返金する（在庫を戻す）"""
    record = await manager.refund_payment(transaction_id)
    logger.info("Payment %s refunded", transaction_id)
    return {
        "success": True,
        "message": "Refund processed successfully",
        "data": record,
    }


# ── Event Store (学習・デバッグ用) ───────────────


@app.get("/api/events")
async def list_events(manager: TransactionManager = Depends(get_manager)):
    return {"success": True, "data": await queries.list_events(manager.ledger)}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": "checkout-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": time.monotonic() - STARTED_AT,
    }
