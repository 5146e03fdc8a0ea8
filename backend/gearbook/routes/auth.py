# Overview: Flask API routes for the authenticated caller (identity, permissions, logout).

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..permissions import get_permission_definition
from ..services import session_service
from ..services.registry import get_services
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user plus the permissions granted by their role."""
    try:
        user = g.current_user
        codes = sorted(get_services().permissions.get_user_permissions(db.session, user.id))
        return jsonify({
            "user": user.to_dict(),
            "permissions": [get_permission_definition(code) for code in codes],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load current user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    try:
        session_service.revoke_session(db.session, token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to revoke session")
        return jsonify({"error": "Internal server error"}), 500
