# Overview: Request decorators for API routes (authentication and role checks).

from datetime import timedelta
from functools import wraps

from flask import current_app, g, jsonify, request

from .extensions import db
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'actor')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets on Flask g:
    - g.current_seller: the authenticated Seller
    - g.actor: the Actor passed to the sale services

    Returns 401 if the Authorization header is missing or the token is
    invalid, expired, revoked, or belongs to a deactivated seller.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "unauthorized"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        idle_hours = current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS") or 2

        context = session_service.validate_session(
            db.session,
            token,
            idle_timeout=timedelta(hours=idle_hours),
        )
        if not context:
            return jsonify({"error": "unauthorized"}), 401

        g.current_seller = context.seller
        g.actor = context.actor

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated seller to hold one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "unauthorized"}), 401

            if g.actor.role not in roles:
                current_app.logger.warning(
                    "Seller %s (role=%s) denied %s %s",
                    g.actor.seller_id, g.actor.role, request.method, request.path,
                )
                return jsonify({"error": "forbidden"}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
