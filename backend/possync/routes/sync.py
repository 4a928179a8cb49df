# Overview: Flask API routes for offline sale sync; parses input and returns JSON responses.

"""Offline sync API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import sync_service
from ..services.errors import StoreUnavailable
from ..services.sync_service import SyncSettings


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.post("/sales")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def sync_sales_route():
    """
    Upload a batch of sales recorded on a device.

    Body: {"sales": [{client_id, shop_id, client_created_at, items: [...]}, ...]}
    Returns 200 with {"results": [...]}, one entry per sale in the same order.
    Per-sale failures are reported inside the results, never as HTTP errors.
    """
    data = request.get_json(silent=True) or {}
    sales = data.get("sales") if isinstance(data, dict) else None

    if not isinstance(sales, list) or not sales:
        return jsonify({"error": "invalid_payload"}), 400

    max_batch = current_app.config.get("SYNC_MAX_BATCH_SIZE")
    if max_batch and len(sales) > max_batch:
        return jsonify({"error": "batch_too_large", "max_batch_size": max_batch}), 413

    try:
        results = sync_service.sync_sales(
            db.session,
            sales,
            g.actor,
            settings=SyncSettings.from_config(current_app.config),
        )
    except StoreUnavailable:
        current_app.logger.exception("Sync batch aborted: store unavailable")
        return jsonify({"error": "store_unavailable"}), 503

    return jsonify({"results": results}), 200


@sync_bp.get("/status")
@require_auth
def sync_status_route():
    """Whether a client event has been recorded, and when."""
    client_id = (request.args.get("client_id") or "").strip()
    if not client_id:
        return jsonify({"error": "missing_client_id"}), 400

    try:
        status = sync_service.get_sync_status(db.session, client_id)
    except Exception:
        current_app.logger.exception("Failed to read sync status")
        return jsonify({"error": "server_error"}), 500

    if status is None:
        return jsonify({"error": "not_found"}), 404

    if g.actor.role == ROLE_SELLER and status["shop_id"] != g.actor.shop_id:
        return jsonify({"error": "not_found"}), 404

    return jsonify(status), 200
