# Overview: Append-only audit sink backed by the audit_logs table.

from __future__ import annotations

from ..models import AuditLog

AUDIT_RESERVATION_CREATE = "RESERVATION_CREATE"
AUDIT_RESERVATION_UPDATE = "RESERVATION_UPDATE"
AUDIT_RESERVATION_CANCEL = "RESERVATION_CANCEL"
AUDIT_RESERVATION_CHECKOUT = "RESERVATION_CHECKOUT"
AUDIT_RESERVATION_RETURN = "RESERVATION_RETURN"
AUDIT_RESERVATION_REFUND = "RESERVATION_REFUND"
AUDIT_RESERVATION_PENALTY = "RESERVATION_PENALTY"
AUDIT_RESERVATION_EXTEND = "RESERVATION_EXTEND"
AUDIT_SECTION_CLOSURE_CREATE = "SECTION_CLOSURE_CREATE"
AUDIT_SECTION_CLOSURE_DELETE = "SECTION_CLOSURE_DELETE"


class AuditLogSink:
    """
    Writes one AuditLog row per call, in its own commit.

    Called after the primary unit of work has committed. On failure the
    session is rolled back and the error re-raised; callers wrap the call
    with best_effort() so the primary operation is never affected.
    """

    def log(
        self,
        session,
        *,
        performed_by: int | None,
        action: str,
        target_type: str | None = None,
        target_id: int | None = None,
        metadata: dict | None = None,
        user_id: int | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            performed_by_user_id=performed_by,
            action=action,
            target_type=target_type,
            target_id=target_id,
            metadata_json=metadata,
        )
        try:
            session.add(entry)
            session.commit()
        except Exception:
            session.rollback()
            raise
        return entry

    def list_logs(
        self,
        session,
        *,
        action: str | None = None,
        target_type: str | None = None,
        target_id: int | None = None,
        user_id: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        page = max(page or 1, 1)
        limit = min(max(limit or 50, 1), 200)

        query = session.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action)
        if target_type:
            query = query.filter(AuditLog.target_type == target_type)
        if target_id is not None:
            query = query.filter(AuditLog.target_id == target_id)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)

        total = query.count()
        rows = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": [r.to_dict() for r in rows], "page": page, "limit": limit, "total": total}
