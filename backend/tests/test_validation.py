# Overview: Pytest coverage for sale event parsing and value validation.

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from possync.services.errors import InvalidItem, InvalidSale, SaleTooOld
from possync.validation import (
    ValidationError,
    coerce_int,
    parse_sale_event,
    require_positive_int,
    validate_sale_event,
)


def _raw(**overrides):
    raw = {
        "client_id": "dev-1:0001",
        "shop_id": 1,
        "client_created_at": "2026-03-01T10:15:00+02:00",
        "items": [{"product_id": 7, "quantity": 2}],
    }
    raw.update(overrides)
    return raw


class TestParseSaleEvent:

    def test_parses_a_complete_event(self):
        event = parse_sale_event(_raw())

        assert event.client_id == "dev-1:0001"
        assert event.shop_id == 1
        # Offsets are normalized to naive UTC
        assert event.client_created_at == datetime(2026, 3, 1, 8, 15)
        assert event.lines[0].product_id == 7
        assert event.lines[0].quantity == 2
        assert event.lines[0].requested_unit_price is None

    def test_accepts_epoch_milliseconds(self):
        event = parse_sale_event(_raw(client_created_at=1767225600000))
        assert event.client_created_at == datetime(2026, 1, 1)

    def test_accepts_lines_key_and_id_fallback(self):
        raw = _raw(lines=[{"product_id": "3", "quantity": "4", "manual_price": "12.50"}])
        del raw["items"]
        del raw["client_id"]
        raw["id"] = "legacy-9"

        event = parse_sale_event(raw)

        assert event.client_id == "legacy-9"
        assert event.lines[0].product_id == 3
        assert event.lines[0].quantity == 4
        assert event.lines[0].requested_unit_price == Decimal("12.50")

    def test_defaults_fill_missing_fields(self):
        now = datetime(2026, 5, 5, 12, 0)
        raw = _raw()
        del raw["client_id"]
        del raw["client_created_at"]

        event = parse_sale_event(raw, default_client_id="server-generated", default_created_at=now)

        assert event.client_id == "server-generated"
        assert event.client_created_at == now

    @pytest.mark.parametrize(
        "overrides,reason",
        [
            ({"client_id": None}, "client_id is required"),
            ({"client_id": "x" * 129}, "client_id must be 1-128 characters"),
            ({"shop_id": None}, "shop_id is required"),
            ({"client_created_at": "yesterday"}, None),
            ({"client_created_at": "   "}, None),
            ({"client_created_at": None}, "client_created_at is required"),
            ({"items": "oops"}, "items must be a list"),
        ],
    )
    def test_rejects_malformed_header(self, overrides, reason):
        with pytest.raises(InvalidSale) as exc_info:
            parse_sale_event(_raw(**overrides))
        if reason:
            assert exc_info.value.details["reason"] == reason

    @pytest.mark.parametrize(
        "item",
        [
            "not-a-dict",
            {"product_id": 1.0, "quantity": 1},
            {"product_id": 1, "quantity": True},
            {"product_id": 1, "quantity": "1e3"},
            {"product_id": 1, "quantity": 1, "requested_unit_price": "free"},
            {"product_id": 1, "quantity": 1, "requested_unit_price": "NaN"},
        ],
    )
    def test_rejects_malformed_item(self, item):
        with pytest.raises(InvalidItem) as exc_info:
            parse_sale_event(_raw(items=[{"product_id": 1, "quantity": 1}, item]))
        assert exc_info.value.details["line"] == 1


class TestValidateSaleEvent:

    def test_valid_event_passes(self):
        validate_sale_event(parse_sale_event(_raw()))

    def test_negative_price_rejected(self):
        event = parse_sale_event(_raw(items=[{"product_id": 1, "quantity": 1, "requested_unit_price": -1}]))
        with pytest.raises(InvalidItem):
            validate_sale_event(event)

    @pytest.mark.parametrize("price", ["12.345", "0.004", 0.001])
    def test_sub_cent_price_rejected(self, price):
        event = parse_sale_event(_raw(items=[{"product_id": 1, "quantity": 1, "requested_unit_price": price}]))
        with pytest.raises(InvalidItem) as exc_info:
            validate_sale_event(event)
        assert exc_info.value.details == {
            "line": 0, "reason": "requested_unit_price must have at most 2 decimal places",
        }

    @pytest.mark.parametrize("price", ["12.34", "12.3", "12.340", 7, "0"])
    def test_cent_precision_price_accepted(self, price):
        validate_sale_event(parse_sale_event(_raw(items=[{"product_id": 1, "quantity": 1, "requested_unit_price": price}])))

    def test_non_positive_product_id_rejected(self):
        event = parse_sale_event(_raw(items=[{"product_id": 0, "quantity": 1}]))
        with pytest.raises(InvalidItem):
            validate_sale_event(event)

    def test_age_limit(self):
        event = parse_sale_event(_raw(client_created_at="2026-03-01T00:00:00Z"))
        now = datetime(2026, 3, 1) + timedelta(hours=25)

        with pytest.raises(SaleTooOld):
            validate_sale_event(event, max_age_hours=24, now=now)
        validate_sale_event(event, max_age_hours=48, now=now)
        validate_sale_event(event, max_age_hours=None, now=now)


class TestCoercion:

    def test_coerce_int_strict(self):
        assert coerce_int(" 42 ", "n") == 42
        with pytest.raises(ValueError):
            coerce_int("4.0", "n")
        with pytest.raises(ValueError):
            coerce_int(False, "n")

    def test_require_positive_int(self):
        assert require_positive_int("5", "quantity") == 5
        with pytest.raises(ValidationError):
            require_positive_int(0, "quantity")
        with pytest.raises(ValidationError):
            require_positive_int(None, "quantity")
