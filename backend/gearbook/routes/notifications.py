# Overview: Flask API routes for the caller's in-app notifications and preferences.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.communications import NOTIFICATION_TYPES
from ..services.registry import get_services
from ..validation import GearbookError, ValidationError, coerce_choice, require_payload
from ..decorators import require_auth
from .common import error_response


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/me")
@require_auth
def my_notifications_route():
    try:
        unread_only = request.args.get("unread", "false").lower() == "true"
        items = get_services().notifier.list_for_user(db.session, g.current_user.id, unread_only=unread_only)
        return jsonify({"notifications": [n.to_dict() for n in items]}), 200
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/me/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = get_services().notifier.mark_read(db.session, g.current_user.id, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification as read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.put("/me/preferences")
@require_auth
def update_preference_route():
    """
    Request body:
    {"notification_type": "RESERVATION_CONFIRMED", "in_app_enabled": false, "email_enabled": true}
    """
    try:
        data = require_payload(request.get_json(silent=True))
        notification_type = coerce_choice(data, "notification_type", NOTIFICATION_TYPES)
        if notification_type is None:
            raise ValidationError("notification_type is required")
        flags = {}
        for key in ("in_app_enabled", "email_enabled"):
            value = data.get(key)
            if value is not None and not isinstance(value, bool):
                raise ValidationError(f"{key} must be a boolean")
            flags[key] = value

        pref = get_services().notifier.set_preference(
            db.session, g.current_user.id, notification_type, **flags
        )
        return jsonify({
            "notification_type": pref.notification_type,
            "in_app_enabled": pref.in_app_enabled,
            "email_enabled": pref.email_enabled,
        }), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update notification preference")
        return jsonify({"error": "Internal server error"}), 500
