"""
Boundary parsing for client-submitted sale events.

Raw JSON bodies are turned into frozen SaleEvent / LineRequest values here,
before any transaction begins. Shape and type problems raise InvalidSale or
InvalidItem; value rules (positive ids and quantities, non-negative prices)
are checked by validate_sale_event, which the sale engine runs after its
authorization and idempotency checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from .services.errors import InvalidItem, InvalidSale, SaleTooOld
from .time_utils import parse_iso_datetime, utcnow


MAX_CLIENT_ID_LENGTH = 128

# Maximum unit price: 9,999,999,999.99 fits NUMERIC(12, 2)
MAX_UNIT_PRICE = Decimal("9999999999.99")
CENT = Decimal("0.01")

# Older clients sent the override price under these names
PRICE_KEYS = ("requested_unit_price", "discount_price", "manual_price")


class ValidationError(ValueError):
    """400-level input problem outside the sale taxonomy."""


@dataclass(frozen=True)
class LineRequest:
    product_id: int
    quantity: int
    requested_unit_price: Decimal | None = None


@dataclass(frozen=True)
class SaleEvent:
    client_id: str
    shop_id: int
    client_created_at: datetime
    lines: tuple[LineRequest, ...]


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: ints and plain digit strings only. Rejects
    bools, floats, decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValueError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValueError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValueError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValueError(f"{field} must be an integer, not a decimal")
    raise ValueError(f"{field} must be an integer")


def coerce_money(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be a number")
    if isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
    elif isinstance(value, Decimal):
        amount = value
    else:
        raise ValueError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValueError(f"{field} must be finite")
    return amount


def _coerce_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    # Browsers may send Date.now() milliseconds
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            raise ValueError("client_created_at out of range")
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError("client_created_at must be an ISO-8601 datetime")


def raw_client_id(raw: Any) -> str | None:
    """Best-effort client id of a raw event, for labelling error results."""
    if not isinstance(raw, dict):
        return None
    value = raw.get("client_id")
    if value in (None, ""):
        value = raw.get("id")
    if value in (None, ""):
        return None
    return str(value)


def _parse_line(index: int, raw: Any) -> LineRequest:
    if not isinstance(raw, dict):
        raise InvalidItem(index, "item must be an object")
    try:
        product_id = coerce_int(raw.get("product_id"), "product_id")
        quantity = coerce_int(raw.get("quantity"), "quantity")
    except ValueError as e:
        raise InvalidItem(index, str(e))

    price = None
    for key in PRICE_KEYS:
        if raw.get(key) is not None:
            try:
                price = coerce_money(raw[key], key)
            except ValueError as e:
                raise InvalidItem(index, str(e))
            break

    return LineRequest(product_id=product_id, quantity=quantity, requested_unit_price=price)


def parse_sale_event(
    raw: Any,
    *,
    default_client_id: str | None = None,
    default_created_at: datetime | None = None,
) -> SaleEvent:
    """
    Parse one untrusted sale event.

    The defaults let the single-sale endpoint fill in values that offline
    clients are required to send (client_id, client_created_at).
    """
    if not isinstance(raw, dict):
        raise InvalidSale("sale must be an object")

    client_id = raw_client_id(raw) or default_client_id
    if not client_id:
        raise InvalidSale("client_id is required")
    client_id = client_id.strip()
    if not client_id or len(client_id) > MAX_CLIENT_ID_LENGTH:
        raise InvalidSale(f"client_id must be 1-{MAX_CLIENT_ID_LENGTH} characters")

    shop_raw = raw.get("shop_id")
    if shop_raw is None:
        raise InvalidSale("shop_id is required")
    try:
        shop_id = coerce_int(shop_raw, "shop_id")
    except ValueError as e:
        raise InvalidSale(str(e))

    created_raw = raw.get("client_created_at")
    if created_raw is None:
        if default_created_at is None:
            raise InvalidSale("client_created_at is required")
        client_created_at = default_created_at
    else:
        try:
            client_created_at = _coerce_timestamp(created_raw)
        except ValueError as e:
            raise InvalidSale(str(e))

    items = raw.get("items", raw.get("lines"))
    if items is None:
        items = []
    if not isinstance(items, list):
        raise InvalidSale("items must be a list")

    lines = tuple(_parse_line(i, item) for i, item in enumerate(items))

    return SaleEvent(
        client_id=client_id,
        shop_id=shop_id,
        client_created_at=client_created_at,
        lines=lines,
    )


def validate_sale_event(
    event: SaleEvent,
    *,
    max_age_hours: int | None = None,
    now: datetime | None = None,
) -> None:
    """Value rules of a parsed event. Raises InvalidSale / InvalidItem / SaleTooOld."""
    if event.shop_id <= 0:
        raise InvalidSale("shop_id must be positive")
    if not event.lines:
        raise InvalidSale("at least one item is required")

    for index, line in enumerate(event.lines):
        if line.product_id <= 0:
            raise InvalidItem(index, "product_id must be positive")
        if line.quantity <= 0:
            raise InvalidItem(index, "quantity must be positive")
        price = line.requested_unit_price
        if price is not None:
            if not price.is_finite() or price < 0:
                raise InvalidItem(index, "requested_unit_price must be non-negative")
            if price > MAX_UNIT_PRICE:
                raise InvalidItem(index, "requested_unit_price is too large")
            if price != price.quantize(CENT):
                raise InvalidItem(index, "requested_unit_price must have at most 2 decimal places")

    if max_age_hours:
        now = now or utcnow()
        if now - event.client_created_at > timedelta(hours=max_age_hours):
            raise SaleTooOld(max_age_hours)


def require_positive_int(value: Any, field: str) -> int:
    """Coerce a request field to a positive integer or raise ValidationError."""
    try:
        number = coerce_int(value, field)
    except ValueError as e:
        raise ValidationError(str(e))
    if number <= 0:
        raise ValidationError(f"{field} must be positive")
    return number
