# Overview: Flask API routes for movements and movement photo uploads.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.registry import get_services
from ..validation import GearbookError, NotFoundError, ValidationError
from ..decorators import require_auth, require_permission
from .common import error_response, int_arg, page_args, serialize_movement


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")

PHOTO_KEY_PREFIX = "movements"


@movements_bp.get("/")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_movements_route():
    """
    Query params: product_id, reservation_id, type (CHECKOUT|RETURN),
    order (asc|desc), page, limit
    """
    try:
        page, limit = page_args()
        result = get_services().movements.list_movements(
            db.session,
            product_id=int_arg("product_id"),
            reservation_id=int_arg("reservation_id"),
            type=request.args.get("type") or None,
            order=request.args.get("order", "desc"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "movements": [serialize_movement(m) for m in result["items"]],
            "page": result["page"],
            "limit": result["limit"],
            "total": result["total"],
        }), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.post("/photos")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def upload_photo_route():
    """
    Upload one photo (multipart field "file").

    Returns the reference to pass in a checkout/return "photos" list:
    {"key", "filename", "mime_type", "size", "url"}
    """
    try:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ValidationError("file is required")

        blobs = get_services().blobs
        mime_type = upload.mimetype or "application/octet-stream"
        key = blobs.new_key(PHOTO_KEY_PREFIX, mime_type)
        stored = blobs.upload(key, upload.read(), mime_type)
        return jsonify({
            "key": stored["key"],
            "filename": upload.filename,
            "mime_type": stored["mime_type"],
            "size": stored["size"],
            "url": blobs.get_signed_url(stored["key"]),
        }), 201
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to upload photo")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.delete("/photos/<path:key>")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def delete_photo_route(key: str):
    """Discard an upload that was never attached to a movement."""
    try:
        if not key.startswith(PHOTO_KEY_PREFIX + "/"):
            raise ValidationError("Invalid photo key")
        if not get_services().blobs.delete(key):
            raise NotFoundError("Photo not found")
        return jsonify({"deleted": True}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete photo")
        return jsonify({"error": "Internal server error"}), 500

