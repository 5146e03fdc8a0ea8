from __future__ import annotations

from ..extensions import db
from gearbook.time_utils import to_utc_z


NOTIFICATION_RESERVATION_CONFIRMED = "RESERVATION_CONFIRMED"
NOTIFICATION_RESERVATION_CANCELLED = "RESERVATION_CANCELLED"
NOTIFICATION_RESERVATION_REFUNDED = "RESERVATION_REFUNDED"
NOTIFICATION_RESERVATION_CHECKOUT = "RESERVATION_CHECKOUT"
NOTIFICATION_RESERVATION_RETURN = "RESERVATION_RETURN"
NOTIFICATION_RESERVATION_EXTENDED = "RESERVATION_EXTENDED"
NOTIFICATION_CREDIT_ADDED = "CREDIT_ADDED"
NOTIFICATION_CREDIT_REMOVED = "CREDIT_REMOVED"
NOTIFICATION_TYPES = {
    NOTIFICATION_RESERVATION_CONFIRMED,
    NOTIFICATION_RESERVATION_CANCELLED,
    NOTIFICATION_RESERVATION_REFUNDED,
    NOTIFICATION_RESERVATION_CHECKOUT,
    NOTIFICATION_RESERVATION_RETURN,
    NOTIFICATION_RESERVATION_EXTENDED,
    NOTIFICATION_CREDIT_ADDED,
    NOTIFICATION_CREDIT_REMOVED,
}


class Notification(db.Model):
    """In-app notification shown to a user."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "metadata": self.metadata_json,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }


class NotificationPreference(db.Model):
    """
    Per-type opt-out. A missing row means the type is enabled on every channel.
    """
    __tablename__ = "notification_preferences"
    __table_args__ = (
        db.UniqueConstraint("user_id", "notification_type", name="uq_notification_prefs_user_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    notification_type = db.Column(db.String(64), nullable=False)
    in_app_enabled = db.Column(db.Boolean, nullable=False, default=True)
    email_enabled = db.Column(db.Boolean, nullable=False, default=True)


class AuditLog(db.Model):
    """
    Append-only record of administrative and lifecycle actions.

    user_id is the subject of the action (e.g. the reservation owner),
    performed_by_user_id the actor.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_target", "target_type", "target_id"),
        db.Index("ix_audit_logs_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    target_type = db.Column(db.String(64), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "performed_by_user_id": self.performed_by_user_id,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "metadata": self.metadata_json,
            "created_at": to_utc_z(self.created_at),
        }
