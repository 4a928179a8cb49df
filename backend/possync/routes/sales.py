# Overview: Flask API routes for single sale confirmation; parses input and returns JSON responses.

"""Sales API routes"""

from uuid import uuid4

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import sale_service
from ..services.errors import SaleConfirmationError, StoreUnavailable
from ..time_utils import utcnow
from ..validation import parse_sale_event


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_body(sale, status: str) -> dict:
    return {
        "status": status,
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in sale.lines],
    }


@sales_bp.post("/shops/<int:shop_id>")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def confirm_sale_route(shop_id: int):
    """
    Confirm a sale at a shop.

    Body: {"items": [{product_id, quantity, requested_unit_price?}], "client_id"?, "client_created_at"?}
    201 with the new sale, 200 if client_id was already recorded.
    Failures map to 403/404/409/422/503 with {"error": code, ...details}.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "invalid_fields"}), 422

    try:
        event = parse_sale_event(
            {**data, "shop_id": shop_id},
            default_client_id=uuid4().hex,
            default_created_at=utcnow(),
        )
        outcome = sale_service.confirm_sale(
            db.session,
            event,
            g.actor,
            lock_timeout_ms=current_app.config.get("STOCK_LOCK_TIMEOUT_MS"),
            attempts=current_app.config.get("SALE_RETRY_ATTEMPTS") or 1,
        )
    except SaleConfirmationError as e:
        return jsonify(e.to_response_body()), e.http_status
    except StoreUnavailable:
        current_app.logger.exception("Sale confirmation failed: store unavailable")
        return jsonify({"error": "store_unavailable"}), 503
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "server_error"}), 500

    sale = sale_service.get_sale(db.session, outcome.sale_id)
    status_code = 201 if outcome.status == sale_service.STATUS_SYNCED else 200
    return jsonify(_sale_body(sale, outcome.status)), status_code


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    """Sale header with its lines. Sellers only see their own shop's sales."""
    sale = sale_service.get_sale(db.session, sale_id)
    if not sale:
        return jsonify({"error": "not_found"}), 404

    if g.actor.role == ROLE_SELLER and sale.shop_id != g.actor.shop_id:
        return jsonify({"error": "not_found"}), 404

    return jsonify({
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in sale.lines],
    }), 200
