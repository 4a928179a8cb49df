# Overview: Flask API routes for shop stock levels and transfers.

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import DBAPIError

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import stock_service
from ..services.concurrency import is_lock_timeout
from ..services.errors import ProductNotFound
from ..services.stock_service import StockError
from ..validation import ValidationError, require_positive_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _forbidden_shop(shop_id: int) -> bool:
    return g.actor.role == ROLE_SELLER and g.actor.shop_id != shop_id


@stock_bp.get("/shops/<int:shop_id>/products/<int:product_id>")
@require_auth
def get_stock_route(shop_id: int, product_id: int):
    if _forbidden_shop(shop_id):
        return jsonify({"error": "forbidden_shop"}), 403

    level = stock_service.get_stock(db.session, shop_id, product_id)
    return jsonify({"on_hand": level.on_hand, "sold_count": level.sold_count}), 200


@stock_bp.post("/shops/<int:shop_id>/products/<int:product_id>/add")
@require_auth
@require_role(ROLE_ADMIN)
def add_stock_route(shop_id: int, product_id: int):
    """
    Move units from the central product pool into a shop.

    Body: {"quantity": int}
    """
    data = request.get_json(silent=True) or {}
    try:
        quantity = require_positive_int(data.get("quantity"), "quantity")
        level = stock_service.transfer_stock(
            db.session,
            shop_id,
            product_id,
            quantity,
            lock_timeout_ms=current_app.config.get("STOCK_LOCK_TIMEOUT_MS"),
        )
    except ValidationError as e:
        return jsonify({"error": "invalid_fields", "message": str(e)}), 400
    except ProductNotFound as e:
        return jsonify(e.to_response_body()), 404
    except StockError as e:
        status = 404 if str(e) == "shop_not_found" else 400
        return jsonify({"error": str(e), **e.details}), status
    except DBAPIError as e:
        db.session.rollback()
        if is_lock_timeout(e):
            return jsonify({"error": "lock_timeout"}), 503
        current_app.logger.exception("Stock transfer failed")
        return jsonify({"error": "server_error"}), 500

    current_app.logger.info(
        "Seller %s moved %s units of product %s to shop %s",
        g.actor.seller_id, quantity, product_id, shop_id,
    )
    return jsonify(level.to_dict()), 200
