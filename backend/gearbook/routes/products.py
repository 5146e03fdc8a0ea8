# Overview: Flask API routes for product availability and per-product movement history.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.registry import get_services
from ..validation import GearbookError, ValidationError, coerce_date
from ..decorators import require_auth, require_permission
from .common import error_response, int_arg, serialize_movement


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/<int:product_id>/availability")
@require_auth
def monthly_availability_route(product_id: int):
    """
    Day-by-day calendar for one month.

    Query params: month=YYYY-MM (required)
    """
    try:
        month = request.args.get("month")
        if not month:
            raise ValidationError("month is required (YYYY-MM)")
        calendar = get_services().availability.get_monthly_availability(db.session, product_id, month)
        return jsonify(calendar), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute availability")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/availability/check")
@require_auth
def check_availability_route(product_id: int):
    """
    Query params: start_date, end_date (ISO dates), exclude_reservation_id (optional)
    """
    try:
        start_date = coerce_date(request.args, "start_date", required=True)
        end_date = coerce_date(request.args, "end_date", required=True)
        result = get_services().availability.is_available(
            db.session,
            product_id,
            start_date,
            end_date,
            exclude_reservation_id=int_arg("exclude_reservation_id"),
        )
        return jsonify(result.to_dict()), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check availability")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_auth
@require_permission("VIEW_PRODUCTS")
def product_movements_route(product_id: int):
    """Latest movements of a product, newest first."""
    try:
        movements = get_services().movements.product_movements(db.session, product_id)
        return jsonify({"movements": [serialize_movement(m) for m in movements]}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list product movements")
        return jsonify({"error": "Internal server error"}), 500
