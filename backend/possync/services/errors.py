"""
Sale confirmation failure taxonomy.

Every way a single sale event can fail is its own exception class carrying a
machine-readable code, the HTTP status used by the single-sale endpoint, and
a structured payload. The sync coordinator turns these into per-event result
entries via to_result(); routes turn them into HTTP responses via
to_response_body().
"""

from __future__ import annotations


class SaleConfirmationError(Exception):
    """Base class for classified, per-event sale failures."""

    code = "SALE_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.code.lower())
        self.details = details

    def payload(self) -> dict:
        return dict(self.details)

    def to_result(self) -> dict:
        return {"status": "error", "code": self.code, **self.payload()}

    def to_response_body(self) -> dict:
        return {"error": self.code.lower(), **self.payload()}


class InvalidSale(SaleConfirmationError):
    """Malformed sale header: missing ids, no lines, unparseable timestamp."""
    code = "INVALID_SALE"
    http_status = 422

    def __init__(self, reason: str):
        super().__init__(f"invalid sale: {reason}", reason=reason)


class InvalidItem(SaleConfirmationError):
    """Malformed sale line: bad product id, non-positive quantity, bad price."""
    code = "INVALID_ITEM"
    http_status = 422

    def __init__(self, line: int, reason: str):
        super().__init__(f"invalid item at line {line}: {reason}", line=line, reason=reason)


class SaleTooOld(SaleConfirmationError):
    code = "SALE_TOO_OLD"
    http_status = 422

    def __init__(self, max_age_hours: int):
        super().__init__(
            f"sale recorded more than {max_age_hours}h ago",
            max_age_hours=max_age_hours,
        )


class ForbiddenShop(SaleConfirmationError):
    code = "FORBIDDEN_SHOP"
    http_status = 403

    def __init__(self, shop_id: int):
        super().__init__(f"not allowed to sell at shop {shop_id}", shop_id=shop_id)


class StockNotFound(SaleConfirmationError):
    """No stock row for the shop/product pair; a provisioning gap."""
    code = "STOCK_NOT_FOUND"
    http_status = 404

    def __init__(self, product_id: int):
        super().__init__(f"no stock row for product {product_id}", product_id=product_id)


class InsufficientStock(SaleConfirmationError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"product {product_id}: requested {requested}, available {available}",
            product_id=product_id,
            available=available,
            requested=requested,
        )

    @property
    def product_id(self) -> int:
        return self.details["product_id"]

    @property
    def available(self) -> int:
        return self.details["available"]

    @property
    def requested(self) -> int:
        return self.details["requested"]


class ProductNotFound(SaleConfirmationError):
    """Product missing from the catalog or deactivated."""
    code = "PRODUCT_NOT_FOUND"
    http_status = 404

    def __init__(self, product_id: int):
        super().__init__(f"product {product_id} not found or inactive", product_id=product_id)


class LockTimeout(SaleConfirmationError):
    """
    The store gave up waiting for a stock row lock (or kept deadlocking).
    Safe for the client to resubmit with the same client_id.
    """
    code = "LOCK_TIMEOUT"
    http_status = 503

    def __init__(self, message: str = "timed out waiting for stock lock"):
        super().__init__(message)


class StoreUnavailable(Exception):
    """The durable store cannot be reached at all. Fails a whole sync batch."""
