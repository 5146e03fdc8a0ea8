# Overview: Flask API routes for credit balances, history and administrative adjustments.

from flask import Blueprint, jsonify, g, current_app, request

from ..extensions import db
from ..services.registry import get_services
from ..validation import GearbookError, coerce_int, coerce_str, require_payload
from ..decorators import require_auth, require_permission
from .common import error_response, page_args


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")
admin_credits_bp = Blueprint("admin_credits", __name__, url_prefix="/api/admin/credits")


@credits_bp.get("/me")
@require_auth
def my_balance_route():
    try:
        balance = get_services().ledger.get_balance(db.session, g.current_user.id)
        return jsonify({"user_id": g.current_user.id, "credit_balance": balance}), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get balance")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/me/transactions")
@require_auth
def my_transactions_route():
    try:
        page, limit = page_args()
        result = get_services().ledger.list_transactions(db.session, g.current_user.id, page=page, limit=limit)
        return jsonify({
            "transactions": result["items"],
            "page": result["page"],
            "limit": result["limit"],
            "total": result["total"],
        }), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@admin_credits_bp.get("/<int:user_id>/transactions")
@require_auth
@require_permission("VIEW_CREDITS")
def user_transactions_route(user_id: int):
    try:
        page, limit = page_args()
        ledger = get_services().ledger
        result = ledger.list_transactions(db.session, user_id, page=page, limit=limit)
        return jsonify({
            "user_id": user_id,
            "credit_balance": ledger.get_balance(db.session, user_id),
            "transactions": result["items"],
            "page": result["page"],
            "limit": result["limit"],
            "total": result["total"],
        }), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@admin_credits_bp.post("/<int:user_id>/adjust")
@require_auth
@require_permission("MANAGE_CREDITS")
def adjust_credits_route(user_id: int):
    """
    Request body:
    {"amount": -20, "reason": "Lost accessory"}

    Returns:
        200: Adjustment applied
        400: Zero amount, missing reason or insufficient credits
        404: Unknown user
    """
    try:
        data = require_payload(request.get_json(silent=True))
        entry = get_services().ledger.adjust_credits(
            db.session,
            user_id,
            coerce_int(data, "amount", required=True),
            reason=coerce_str(data, "reason", required=True, max_length=500),
            performed_by=g.current_user.id,
        )
        return jsonify({
            "user_id": user_id,
            "credit_balance": entry.transaction.balance_after,
            "transaction": entry.transaction.to_dict(),
        }), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust credits")
        return jsonify({"error": "Internal server error"}), 500


@admin_credits_bp.get("/verify")
@require_auth
@require_permission("VIEW_CREDITS")
def verify_ledger_route():
    """Users whose balance diverges from the sum of their transactions."""
    try:
        mismatches = get_services().ledger.verify_all(db.session)
        return jsonify({"consistent": not mismatches, "mismatches": mismatches}), 200
    except Exception:
        current_app.logger.exception("Failed to verify ledger")
        return jsonify({"error": "Internal server error"}), 500
