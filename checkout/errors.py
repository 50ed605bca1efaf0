"""
Checkout Service — 業務エラー定義

決済フローで想定される失敗はすべて CheckoutError のサブクラスとして表現する。
これらは「回復可能な業務上の結果」であり、HTTP 層でステータスコードに変換される。

ConcurrencyConflict は業務エラーではなく内部障害なので、あえて
CheckoutError を継承しない（そのまま上位へ伝播させる）。
"""


class CheckoutError(Exception):
    """業務エラーの基底クラス"""

    message = "Checkout failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


class ProductNotFound(CheckoutError):
    message = "Product not found"

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__()


class InsufficientStock(CheckoutError):
    message = "Insufficient stock"

    def __init__(self, product_id: int, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__()


class ValidationFailed(CheckoutError):
    """入力検証エラー。違反内容をすべて保持する。"""

    message = "Validation failed"

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__()


class PaymentDeclined(CheckoutError):
    """決済ゲートウェイが拒否した"""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class PaymentNotFound(CheckoutError):
    message = "Payment not found"

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__()


class AlreadyRefunded(CheckoutError):
    message = "Payment already refunded"

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__()


class ConcurrencyConflict(Exception):
    """イベントストアのバージョン競合（楽観的ロック違反）"""

    def __init__(self, aggregate_id: str, expected_version: int, actual_version: int) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {aggregate_id}: "
            f"expected={expected_version}, actual={actual_version}"
        )
