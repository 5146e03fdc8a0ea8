# Overview: System health endpoint and the administrative audit log listing.

"""
System health and audit endpoints.

The health check verifies the database and the S3 bucket that holds
movement photos, and reports whether the default roles exist.
"""

import time
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import Reservation, Role, User
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from ..services.registry import get_services
from ..time_utils import utcnow
from ..validation import GearbookError
from ..decorators import require_auth, require_permission
from .common import error_response, int_arg, page_args

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        reservation_count = db.session.query(Reservation).count()
        missing_roles = [
            name for name in DEFAULT_ROLE_PERMISSIONS
            if db.session.query(Role).filter_by(name=name).first() is None
        ]
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if missing_roles else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "reservations": reservation_count,
            }
        }
        if missing_roles:
            result["warning"] = f"Missing roles: {', '.join(missing_roles)}"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_blob_storage_health() -> dict:
    return get_services().blobs.check_health()


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    storage_health = check_blob_storage_health()

    all_checks = [database_health, storage_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "blob_storage": storage_health,
        }
    }

    return response, http_status


@system_bp.get("/admin/audit-logs")
@require_auth
@require_permission("VIEW_USERS")
def audit_logs_route():
    """Query params: action, target_type, target_id, user_id, page, limit"""
    try:
        page, limit = page_args(default_limit=50)
        result = get_services().audit.list_logs(
            db.session,
            action=request.args.get("action") or None,
            target_type=request.args.get("target_type") or None,
            target_id=int_arg("target_id"),
            user_id=int_arg("user_id"),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200
    except GearbookError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({"error": "Internal server error"}), 500
