# Overview: Flask API routes for reservations; parses input and returns JSON responses.

"""
Reservation API Routes

DESIGN:
- /api/reservations/me/...: self-service, every query is filtered by the
  caller's user id, so another member's reservation is simply NOT_FOUND
- /api/admin/reservations/...: staff operations (admin create, update,
  cancel, checkout, return, refund, penalty, QR scan)

Errors are answered as {"error", "code", "details"} with the status code of
the domain error.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.reservations import CONDITIONS
from ..services.registry import get_services
from ..validation import (
    GearbookError,
    ValidationError,
    coerce_choice,
    coerce_date,
    coerce_int,
    coerce_photos,
    coerce_str,
    coerce_time,
    require_payload,
)
from ..decorators import require_auth, require_permission
from .common import error_response, int_arg, page_args, serialize_outcome, serialize_reservation


reservations_bp = Blueprint("reservations", __name__, url_prefix="/api/reservations")
admin_reservations_bp = Blueprint("admin_reservations", __name__, url_prefix="/api/admin/reservations")


def _listing(result: dict) -> dict:
    return {
        "reservations": [serialize_reservation(r) for r in result["items"]],
        "page": result["page"],
        "limit": result["limit"],
        "total": result["total"],
    }


def _date_arg(name: str):
    return coerce_date(request.args, name)


# =============================================================================
# SELF-SERVICE
# =============================================================================

@reservations_bp.get("/me")
@require_auth
def list_my_reservations_route():
    try:
        page, limit = page_args()
        result = get_services().reservations.list_reservations(
            db.session,
            owner_id=g.current_user.id,
            status=request.args.get("status") or None,
            page=page,
            limit=limit,
        )
        return jsonify(_listing(result)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list reservations")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.post("/me")
@require_auth
def create_my_reservation_route():
    """
    Book a product for the caller.

    Request body:
    {
        "product_id": 1,
        "start_date": "2026-11-02",
        "end_date": "2026-11-04",
        "start_time": "09:00",  (optional)
        "end_time": "17:00",    (optional)
        "notes": "..."          (optional)
    }

    Returns:
        201: Reservation created and charged
        400: Rule violation or insufficient credits
        409: Dates no longer available
    """
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.create(
            db.session,
            user_id=g.current_user.id,
            product_id=coerce_int(data, "product_id", required=True),
            start_date=coerce_date(data, "start_date", required=True),
            end_date=coerce_date(data, "end_date", required=True),
            start_time=coerce_time(data, "start_time"),
            end_time=coerce_time(data, "end_time"),
            notes=coerce_str(data, "notes", max_length=2000),
            created_by=g.current_user.id,
        )
        return jsonify(serialize_outcome(outcome)), 201
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.get("/me/<int:reservation_id>")
@require_auth
def get_my_reservation_route(reservation_id: int):
    try:
        reservation = get_services().reservations.get(db.session, reservation_id, owner_id=g.current_user.id)
        return jsonify({"reservation": serialize_reservation(reservation)}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.post("/me/<int:reservation_id>/cancel")
@require_auth
def cancel_my_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.cancel(
            db.session,
            reservation_id,
            cancelled_by=g.current_user.id,
            reason=coerce_str(data, "reason", max_length=500),
            owner_id=g.current_user.id,
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.get("/me/<int:reservation_id>/extension")
@require_auth
def check_my_extension_route(reservation_id: int):
    try:
        new_end_date = _date_arg("new_end_date")
        if new_end_date is None:
            raise ValidationError("new_end_date is required")
        check = get_services().extensions.check_extension_possible(
            db.session,
            reservation_id,
            new_end_date,
            owner_id=g.current_user.id,
        )
        return jsonify(check.to_dict()), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check extension")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.post("/me/<int:reservation_id>/extend")
@require_auth
def extend_my_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        reservation = get_services().extensions.extend(
            db.session,
            reservation_id,
            user_id=g.current_user.id,
            new_end_date=coerce_date(data, "new_end_date", required=True),
            owner_id=g.current_user.id,
        )
        return jsonify({"reservation": serialize_reservation(reservation)}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to extend reservation")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ADMIN
# =============================================================================

@admin_reservations_bp.get("/")
@require_auth
@require_permission("VIEW_RESERVATIONS")
def list_reservations_route():
    """
    Query params: status, product_id, user_id, start_from, start_to,
    overdue (checkouts|returns), page, limit
    """
    try:
        page, limit = page_args()
        result = get_services().reservations.list_reservations(
            db.session,
            status=request.args.get("status") or None,
            product_id=int_arg("product_id"),
            user_id=int_arg("user_id"),
            start_from=_date_arg("start_from"),
            start_to=_date_arg("start_to"),
            overdue=request.args.get("overdue") or None,
            page=page,
            limit=limit,
        )
        return jsonify(_listing(result)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list reservations")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.get("/<int:reservation_id>")
@require_auth
@require_permission("VIEW_RESERVATIONS")
def get_reservation_route(reservation_id: int):
    try:
        reservation = get_services().reservations.get(db.session, reservation_id)
        return jsonify({"reservation": serialize_reservation(reservation)}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def admin_create_reservation_route():
    """Create on behalf of a member; admins may back-date."""
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.create(
            db.session,
            user_id=coerce_int(data, "user_id", required=True),
            product_id=coerce_int(data, "product_id", required=True),
            start_date=coerce_date(data, "start_date", required=True),
            end_date=coerce_date(data, "end_date", required=True),
            start_time=coerce_time(data, "start_time"),
            end_time=coerce_time(data, "end_time"),
            notes=coerce_str(data, "notes", max_length=2000),
            admin_notes=coerce_str(data, "admin_notes", max_length=2000),
            created_by=g.current_user.id,
            is_admin=True,
        )
        return jsonify(serialize_outcome(outcome)), 201
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.patch("/<int:reservation_id>")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def update_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.update(
            db.session,
            reservation_id,
            performed_by=g.current_user.id,
            start_date=coerce_date(data, "start_date"),
            end_date=coerce_date(data, "end_date"),
            notes=coerce_str(data, "notes", max_length=2000),
            admin_notes=coerce_str(data, "admin_notes", max_length=2000),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/<int:reservation_id>/cancel")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def admin_cancel_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.cancel(
            db.session,
            reservation_id,
            cancelled_by=g.current_user.id,
            reason=coerce_str(data, "reason", max_length=500),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/<int:reservation_id>/checkout")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def checkout_reservation_route(reservation_id: int):
    """
    Request body (all optional):
    {"notes": "...", "condition": "OK", "photos": [{key, filename, mime_type, size}]}
    """
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.checkout(
            db.session,
            reservation_id,
            performed_by=g.current_user.id,
            notes=coerce_str(data, "notes", max_length=2000),
            condition=coerce_choice(data, "condition", CONDITIONS),
            photos=coerce_photos(data),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check out reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/<int:reservation_id>/return")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def return_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.return_product(
            db.session,
            reservation_id,
            performed_by=g.current_user.id,
            condition=coerce_choice(data, "condition", CONDITIONS),
            notes=coerce_str(data, "notes", max_length=2000),
            photos=coerce_photos(data),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/<int:reservation_id>/refund")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def refund_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.refund(
            db.session,
            reservation_id,
            performed_by=g.current_user.id,
            amount=coerce_int(data, "amount", minimum=1),
            reason=coerce_str(data, "reason", max_length=500),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund reservation")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/<int:reservation_id>/penalty")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def penalize_reservation_route(reservation_id: int):
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.penalty(
            db.session,
            reservation_id,
            performed_by=g.current_user.id,
            amount=coerce_int(data, "amount", required=True, minimum=1),
            reason=coerce_str(data, "reason", required=True, max_length=500),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply penalty")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QR SCAN
# =============================================================================

@admin_reservations_bp.post("/scan/resolve")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def resolve_qr_route():
    try:
        data = require_payload(request.get_json(silent=True))
        reservation = get_services().reservations.resolve_qr(
            db.session, coerce_str(data, "qr_code", required=True)
        )
        return jsonify({"reservation": serialize_reservation(reservation)}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resolve QR code")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/scan/checkout")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def scan_checkout_route():
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.scan_checkout(
            db.session,
            coerce_str(data, "qr_code", required=True),
            performed_by=g.current_user.id,
            notes=coerce_str(data, "notes", max_length=2000),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check out by QR code")
        return jsonify({"error": "Internal server error"}), 500


@admin_reservations_bp.post("/scan/return")
@require_auth
@require_permission("MANAGE_RESERVATIONS")
def scan_return_route():
    try:
        data = require_payload(request.get_json(silent=True))
        outcome = get_services().reservations.scan_return(
            db.session,
            coerce_str(data, "qr_code", required=True),
            performed_by=g.current_user.id,
            condition=coerce_choice(data, "condition", CONDITIONS),
            notes=coerce_str(data, "notes", max_length=2000),
            photos=coerce_photos(data),
        )
        return jsonify(serialize_outcome(outcome)), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return by QR code")
        return jsonify({"error": "Internal server error"}), 500
