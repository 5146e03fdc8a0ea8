from __future__ import annotations

from ..extensions import db
from gearbook.time_utils import to_utc_z, to_iso_date


RESERVATION_STATUS_CONFIRMED = "CONFIRMED"
RESERVATION_STATUS_CHECKED_OUT = "CHECKED_OUT"
RESERVATION_STATUS_RETURNED = "RETURNED"
RESERVATION_STATUS_CANCELLED = "CANCELLED"
RESERVATION_STATUS_REFUNDED = "REFUNDED"
RESERVATION_STATUSES = {
    RESERVATION_STATUS_CONFIRMED,
    RESERVATION_STATUS_CHECKED_OUT,
    RESERVATION_STATUS_RETURNED,
    RESERVATION_STATUS_CANCELLED,
    RESERVATION_STATUS_REFUNDED,
}

# Statuses that occupy the product calendar
BLOCKING_STATUSES = (RESERVATION_STATUS_CONFIRMED, RESERVATION_STATUS_CHECKED_OUT)

MOVEMENT_TYPE_CHECKOUT = "CHECKOUT"
MOVEMENT_TYPE_RETURN = "RETURN"
MOVEMENT_TYPES = {MOVEMENT_TYPE_CHECKOUT, MOVEMENT_TYPE_RETURN}

CONDITION_OK = "OK"
CONDITION_MINOR_DAMAGE = "MINOR_DAMAGE"
CONDITION_MAJOR_DAMAGE = "MAJOR_DAMAGE"
CONDITION_MISSING_PARTS = "MISSING_PARTS"
CONDITION_BROKEN = "BROKEN"
CONDITIONS = {
    CONDITION_OK,
    CONDITION_MINOR_DAMAGE,
    CONDITION_MAJOR_DAMAGE,
    CONDITION_MISSING_PARTS,
    CONDITION_BROKEN,
}
DAMAGE_CONDITIONS = CONDITIONS - {CONDITION_OK}


class Reservation(db.Model):
    """
    A user's booking of one product over an inclusive date range.

    LIFECYCLE:
        CONFIRMED -> CHECKED_OUT -> RETURNED
        CONFIRMED -> CANCELLED

    Refunds and penalties are ledger operations recorded on the row
    (refund_amount / penalty_amount are cumulative) without changing the
    physical status. REFUNDED remains a valid stored status for
    filtering but is not produced by transitions.

    version_id serializes concurrent transitions: a second checkout racing
    the first fails on the version check instead of recording a duplicate
    movement.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.CheckConstraint("end_date >= start_date", name="ck_reservations_dates"),
        db.Index("ix_reservations_product_dates", "product_id", "start_date", "end_date"),
        db.Index("ix_reservations_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=True)
    end_time = db.Column(db.String(5), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=RESERVATION_STATUS_CONFIRMED, index=True)

    credits_charged = db.Column(db.Integer, nullable=False, default=0)
    extension_count = db.Column(db.Integer, nullable=False, default=0)
    total_extension_cost = db.Column(db.Integer, nullable=False, default=0)
    refund_amount = db.Column(db.Integer, nullable=False, default=0)
    penalty_amount = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    checked_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    checked_out_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(500), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("reservations", lazy=True))
    product = db.relationship("Product", backref=db.backref("reservations", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_refunded(self) -> bool:
        return self.refunded_at is not None

    @property
    def refundable_amount(self) -> int:
        return max(self.credits_charged - self.refund_amount, 0)

    def to_dict(self, *, qr_code: str | None = None) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "credits_charged": self.credits_charged,
            "extension_count": self.extension_count,
            "total_extension_cost": self.total_extension_cost,
            "refund_amount": self.refund_amount,
            "penalty_amount": self.penalty_amount,
            "is_refunded": self.is_refunded,
            "notes": self.notes,
            "admin_notes": self.admin_notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "checked_out_at": to_utc_z(self.checked_out_at),
            "returned_at": to_utc_z(self.returned_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "refunded_at": to_utc_z(self.refunded_at),
            "qr_code": qr_code,
        }


class ProductMovement(db.Model):
    """
    Physical checkout or return of a product.

    IMMUTABLE: rows are appended by the movement recorder and never updated
    or deleted. reservation_id is NULL for out-of-band movements.
    """
    __tablename__ = "product_movements"
    __table_args__ = (
        db.Index("ix_product_movements_product_performed", "product_id", "performed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # CHECKOUT, RETURN
    condition = db.Column(db.String(16), nullable=False, default=CONDITION_OK)
    notes = db.Column(db.Text, nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))
    reservation = db.relationship("Reservation", backref=db.backref("movements", lazy=True))
    photos = db.relationship(
        "MovementPhoto",
        backref="movement",
        lazy=True,
        order_by="MovementPhoto.sort_order",
    )

    def to_dict(self, *, url_for_key=None) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "reservation_id": self.reservation_id,
            "type": self.type,
            "condition": self.condition,
            "notes": self.notes,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_at": to_utc_z(self.performed_at),
            "photos": [p.to_dict(url_for_key=url_for_key) for p in self.photos],
        }


class MovementPhoto(db.Model):
    """Blob-store reference attached to a movement; sort_order keeps upload order."""
    __tablename__ = "movement_photos"
    __table_args__ = (
        db.UniqueConstraint("movement_id", "sort_order", name="uq_movement_photos_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("product_movements.id"), nullable=False, index=True)
    key = db.Column(db.String(512), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(128), nullable=False)
    size = db.Column(db.Integer, nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self, *, url_for_key=None) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "sort_order": self.sort_order,
            "url": url_for_key(self.key) if url_for_key else None,
        }
