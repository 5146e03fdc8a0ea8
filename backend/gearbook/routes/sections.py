# Overview: Flask API routes for section closures and pickup/return time slots.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services.registry import get_services
from ..validation import (
    GearbookError,
    ValidationError,
    coerce_date,
    coerce_int,
    coerce_str,
    coerce_time,
    require_payload,
)
from ..decorators import require_auth, require_permission
from .common import error_response, serialize_reservation


sections_bp = Blueprint("sections", __name__, url_prefix="/api/sections")


# =============================================================================
# CLOSURES
# =============================================================================

@sections_bp.get("/<int:section_id>/closures")
@require_auth
def list_closures_route(section_id: int):
    """
    Query params:
    - start_date + end_date: closures overlapping that range
    - include_expired=true: also past closures
    """
    try:
        sections = get_services().sections
        start_date = coerce_date(request.args, "start_date")
        end_date = coerce_date(request.args, "end_date")
        if start_date is not None or end_date is not None:
            if start_date is None or end_date is None:
                raise ValidationError("start_date and end_date must be given together")
            closures = sections.closures_for_range(db.session, section_id, start_date, end_date)
        else:
            include_expired = request.args.get("include_expired", "false").lower() == "true"
            closures = sections.list_closures(db.session, section_id, include_expired=include_expired)
        return jsonify({"closures": [c.to_dict() for c in closures]}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list closures")
        return jsonify({"error": "Internal server error"}), 500


@sections_bp.post("/<int:section_id>/closures")
@require_auth
@require_permission("MANAGE_SECTIONS")
def create_closure_route(section_id: int):
    """
    Request body:
    {"start_date": "2026-12-24", "end_date": "2026-12-26", "reason": "Holidays"}

    Returns 201 with the closure and the reservations whose pickup or return
    falls inside it.
    """
    try:
        data = require_payload(request.get_json(silent=True))
        closure, affected = get_services().sections.create_closure(
            db.session,
            section_id,
            start_date=coerce_date(data, "start_date", required=True),
            end_date=coerce_date(data, "end_date", required=True),
            reason=coerce_str(data, "reason", required=True, max_length=255),
            created_by=g.current_user.id,
        )
        return jsonify({
            "closure": closure.to_dict(),
            "affected_reservations": [serialize_reservation(r) for r in affected],
        }), 201
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create closure")
        return jsonify({"error": "Internal server error"}), 500


@sections_bp.delete("/<int:section_id>/closures/<int:closure_id>")
@require_auth
@require_permission("MANAGE_SECTIONS")
def delete_closure_route(section_id: int, closure_id: int):
    try:
        get_services().sections.delete_closure(
            db.session, section_id, closure_id, deleted_by=g.current_user.id
        )
        return jsonify({"deleted": True}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete closure")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TIME SLOTS
# =============================================================================

@sections_bp.get("/<int:section_id>/time-slots")
@require_auth
def list_time_slots_route(section_id: int):
    try:
        slots = get_services().sections.list_time_slots(
            db.session, section_id, type=request.args.get("type") or None
        )
        return jsonify({"time_slots": [s.to_dict() for s in slots]}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list time slots")
        return jsonify({"error": "Internal server error"}), 500


@sections_bp.post("/<int:section_id>/time-slots")
@require_auth
@require_permission("MANAGE_SECTIONS")
def create_time_slot_route(section_id: int):
    """
    Request body:
    {"type": "CHECKOUT", "day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}
    """
    try:
        data = require_payload(request.get_json(silent=True))
        slot = get_services().sections.create_time_slot(
            db.session,
            section_id,
            type=coerce_str(data, "type", required=True),
            day_of_week=coerce_int(data, "day_of_week", required=True),
            start_time=coerce_time(data, "start_time"),
            end_time=coerce_time(data, "end_time"),
        )
        return jsonify({"time_slot": slot.to_dict()}), 201
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create time slot")
        return jsonify({"error": "Internal server error"}), 500


@sections_bp.delete("/<int:section_id>/time-slots/<int:slot_id>")
@require_auth
@require_permission("MANAGE_SECTIONS")
def delete_time_slot_route(section_id: int, slot_id: int):
    try:
        get_services().sections.delete_time_slot(db.session, section_id, slot_id)
        return jsonify({"deleted": True}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete time slot")
        return jsonify({"error": "Internal server error"}), 500
