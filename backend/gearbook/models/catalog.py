from __future__ import annotations

from ..extensions import db
from gearbook.time_utils import to_utc_z, to_iso_date


PRODUCT_STATUS_AVAILABLE = "AVAILABLE"
PRODUCT_STATUS_UNAVAILABLE = "UNAVAILABLE"
PRODUCT_STATUS_MAINTENANCE = "MAINTENANCE"
PRODUCT_STATUS_ARCHIVED = "ARCHIVED"
PRODUCT_STATUSES = {
    PRODUCT_STATUS_AVAILABLE,
    PRODUCT_STATUS_UNAVAILABLE,
    PRODUCT_STATUS_MAINTENANCE,
    PRODUCT_STATUS_ARCHIVED,
}

CREDIT_PERIOD_DAY = "DAY"
CREDIT_PERIOD_WEEK = "WEEK"
CREDIT_PERIOD_DAYS = {CREDIT_PERIOD_DAY: 1, CREDIT_PERIOD_WEEK: 7}

SLOT_TYPE_CHECKOUT = "CHECKOUT"
SLOT_TYPE_RETURN = "RETURN"

ALL_WEEKDAYS = [0, 1, 2, 3, 4, 5, 6]


class Section(db.Model):
    """
    Top-level grouping of products, carrying the pickup/return rules.

    allowed_days_out: weekdays (0 = Sunday) on which products may be picked up
    allowed_days_in:  weekdays on which products may be returned
    refund_deadline_hours: cancellations later than this many hours before
        the start date are not refunded automatically (NULL = app default)

    System sections (is_system) are created by bootstrap and cannot be
    modified or closed.
    """
    __tablename__ = "sections"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_sections_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_system = db.Column(db.Boolean, nullable=False, default=False)

    allowed_days_in = db.Column(db.JSON, nullable=False, default=lambda: list(ALL_WEEKDAYS))
    allowed_days_out = db.Column(db.JSON, nullable=False, default=lambda: list(ALL_WEEKDAYS))
    refund_deadline_hours = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_system": self.is_system,
            "allowed_days_in": list(self.allowed_days_in or []),
            "allowed_days_out": list(self.allowed_days_out or []),
            "refund_deadline_hours": self.refund_deadline_hours,
            "created_at": to_utc_z(self.created_at),
        }


class SubSection(db.Model):
    __tablename__ = "sub_sections"
    __table_args__ = (
        db.UniqueConstraint("section_id", "name", name="uq_sub_sections_section_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    section = db.relationship("Section", backref=db.backref("sub_sections", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "name": self.name,
            "sort_order": self.sort_order,
        }


class SectionClosure(db.Model):
    """Inclusive date range during which a section is closed (holidays, inventory days)."""
    __tablename__ = "section_closures"
    __table_args__ = (
        db.CheckConstraint("end_date >= start_date", name="ck_section_closures_dates"),
        db.Index("ix_section_closures_section_dates", "section_id", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    section = db.relationship("Section", backref=db.backref("closures", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class TimeSlot(db.Model):
    """
    Opening window for pickups (CHECKOUT) or returns (RETURN) on a weekday.

    A weekday without slots of a given type accepts any time.
    Times are "HH:MM" strings so lexical comparison is chronological.
    """
    __tablename__ = "time_slots"
    __table_args__ = (
        db.Index("ix_time_slots_section_type_day", "section_id", "type", "day_of_week"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)  # CHECKOUT, RETURN
    day_of_week = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)

    section = db.relationship("Section", backref=db.backref("time_slots", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "type": self.type,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


class Product(db.Model):
    """
    Reservable item.

    Pricing: price_per_period credits per credit_period (DAY or WEEK);
    a reservation pays ceil(days / period_days) * price_per_period.
    Duration bounds are in days; max_duration = 0 means unlimited.

    last_condition / last_movement_at are written only by the movement
    recorder. Every reservation write calls mark_reserved(), which bumps
    booking_seq so overlapping concurrent bookings race on version_id.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("reference", name="uq_products_reference"),
        db.Index("ix_products_section_status", "section_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    price_per_period = db.Column(db.Integer, nullable=False, default=0)
    credit_period = db.Column(db.String(8), nullable=False, default=CREDIT_PERIOD_DAY)
    min_duration = db.Column(db.Integer, nullable=False, default=1)
    max_duration = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_AVAILABLE, index=True)
    last_condition = db.Column(db.String(16), nullable=True)
    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_reserved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    booking_seq = db.Column(db.Integer, nullable=False, default=0)

    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=False, index=True)
    sub_section_id = db.Column(db.Integer, db.ForeignKey("sub_sections.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    section = db.relationship("Section", backref=db.backref("products", lazy=True))
    sub_section = db.relationship("SubSection", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def mark_reserved(self, now) -> None:
        # booking_seq always changes, so the flush always issues a versioned UPDATE
        self.last_reserved_at = now
        self.booking_seq = (self.booking_seq or 0) + 1

    @property
    def period_days(self) -> int:
        return CREDIT_PERIOD_DAYS.get(self.credit_period, 1)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "reference": self.reference,
            "description": self.description,
            "price_per_period": self.price_per_period,
            "credit_period": self.credit_period,
            "min_duration": self.min_duration,
            "max_duration": self.max_duration,
            "status": self.status,
            "last_condition": self.last_condition,
            "last_movement_at": to_utc_z(self.last_movement_at),
            "section_id": self.section_id,
            "sub_section_id": self.sub_section_id,
            "created_at": to_utc_z(self.created_at),
        }
