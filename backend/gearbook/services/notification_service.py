# Overview: In-app notification sink honoring per-user and per-type preferences.

from __future__ import annotations

from flask import current_app

from ..models import Notification, NotificationPreference, User
from ..models.communications import NOTIFICATION_TYPES
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError


class NotificationSink:
    """
    Creates Notification rows for a user.

    notify() returns None (and writes nothing) when the user switched off
    in-app notifications globally or for this type. Like the audit sink it
    commits on its own and rolls back before re-raising on failure.
    """

    def is_enabled(self, session, user: User, notification_type: str) -> bool:
        if not user.in_app_notifications:
            return False
        pref = (
            session.query(NotificationPreference)
            .filter_by(user_id=user.id, notification_type=notification_type)
            .first()
        )
        return pref is None or bool(pref.in_app_enabled)

    def notify(
        self,
        session,
        *,
        user_id: int,
        type: str,
        title: str,
        message: str,
        metadata: dict | None = None,
    ) -> Notification | None:
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type '{type}'")
        try:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found", details={"user_id": user_id})
            if not self.is_enabled(session, user, type):
                current_app.logger.info("Notification %s skipped for user %s (disabled)", type, user_id)
                return None

            notification = Notification(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                metadata_json=metadata,
            )
            session.add(notification)
            session.commit()
        except Exception:
            session.rollback()
            raise
        return notification

    def set_preference(
        self,
        session,
        user_id: int,
        notification_type: str,
        *,
        in_app_enabled: bool | None = None,
        email_enabled: bool | None = None,
    ) -> NotificationPreference:
        if notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type '{notification_type}'")
        pref = (
            session.query(NotificationPreference)
            .filter_by(user_id=user_id, notification_type=notification_type)
            .first()
        )
        if pref is None:
            pref = NotificationPreference(user_id=user_id, notification_type=notification_type)
            session.add(pref)
        if in_app_enabled is not None:
            pref.in_app_enabled = in_app_enabled
        if email_enabled is not None:
            pref.email_enabled = email_enabled
        session.commit()
        return pref

    def list_for_user(self, session, user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        query = session.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read_at.is_(None))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, session, user_id: int, notification_id: int) -> Notification:
        notification = (
            session.query(Notification)
            .filter_by(id=notification_id, user_id=user_id)
            .first()
        )
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.read_at is None:
            notification.read_at = utcnow()
            session.commit()
        return notification
