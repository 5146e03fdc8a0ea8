# Overview: Service-layer operations for availability; decides whether a product can be booked for a date range.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import and_

from ..models import Product, Reservation, SectionClosure, TimeSlot
from ..models.catalog import SLOT_TYPE_CHECKOUT, SLOT_TYPE_RETURN
from ..models.reservations import BLOCKING_STATUSES, RESERVATION_STATUS_CHECKED_OUT
from ..time_utils import day_of_week, inclusive_days, iter_days, parse_month, to_iso_date
from ..validation import NotFoundError, ValidationError

"""
Availability Invariants

- Ranges are inclusive on both ends: [start_date, end_date].
- Two ranges overlap when existing.start <= new.end AND existing.end >= new.start.
- Only blocking reservations (CONFIRMED, CHECKED_OUT) occupy the calendar.
- A range touching any closure day of the product's section is unavailable,
  whatever the reservation calendar says.
- This service only reads. It never commits; callers run it inside their
  own unit of work so the check and the write see the same snapshot.
"""

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DAY_STATUS_FREE = "FREE"
DAY_STATUS_RESERVED = "RESERVED"
DAY_STATUS_CHECKED_OUT = "CHECKED_OUT"


@dataclass
class AvailabilityResult:
    available: bool
    conflicts: list = field(default_factory=list)
    closures: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "conflicts": [
                {
                    "id": r.id,
                    "start_date": to_iso_date(r.start_date),
                    "end_date": to_iso_date(r.end_date),
                    "status": r.status,
                }
                for r in self.conflicts
            ],
            "closures": [c.to_dict() for c in self.closures],
        }


def compute_cost(product: Product, days: int) -> int:
    """ceil(days / period_days) * price_per_period, in whole credits."""
    period = product.period_days
    periods = -(-days // period)
    return periods * product.price_per_period


class AvailabilityService:
    """
    Stateless availability calculator.

    Every method takes the session explicitly so the caller owns the
    transaction boundary.
    """

    def get_product(self, session, product_id: int) -> Product:
        product = session.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    def find_conflicts(
        self,
        session,
        product_id: int,
        start_date: date,
        end_date: date,
        exclude_reservation_id: int | None = None,
    ) -> list[Reservation]:
        query = session.query(Reservation).filter(
            Reservation.product_id == product_id,
            Reservation.status.in_(BLOCKING_STATUSES),
            Reservation.start_date <= end_date,
            Reservation.end_date >= start_date,
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query.order_by(Reservation.start_date.asc(), Reservation.id.asc()).all()

    def find_closures(self, session, section_id: int, start_date: date, end_date: date) -> list[SectionClosure]:
        return (
            session.query(SectionClosure)
            .filter(
                and_(
                    SectionClosure.section_id == section_id,
                    SectionClosure.start_date <= end_date,
                    SectionClosure.end_date >= start_date,
                )
            )
            .order_by(SectionClosure.start_date.asc())
            .all()
        )

    def is_available(
        self,
        session,
        product_id: int,
        start_date: date,
        end_date: date,
        exclude_reservation_id: int | None = None,
    ) -> AvailabilityResult:
        """
        Check a product's calendar for [start_date, end_date].

        Raises NotFoundError for an unknown product and ValidationError when
        end_date precedes start_date.
        """
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")
        if end_date < start_date:
            raise ValidationError("end_date must be on or after start_date")

        product = self.get_product(session, product_id)
        conflicts = self.find_conflicts(session, product_id, start_date, end_date, exclude_reservation_id)
        closures = self.find_closures(session, product.section_id, start_date, end_date)

        return AvailabilityResult(
            available=not conflicts and not closures,
            conflicts=conflicts,
            closures=closures,
        )

    # ------------------------------------------------------------------
    # Booking rules
    # ------------------------------------------------------------------

    def validate_duration(self, product: Product, start_date: date, end_date: date) -> int:
        days = inclusive_days(start_date, end_date)
        if days < (product.min_duration or 1):
            raise ValidationError(
                f"Minimum duration is {product.min_duration} day(s)",
                details={"min_duration": product.min_duration, "requested_days": days},
            )
        if product.max_duration and days > product.max_duration:
            raise ValidationError(
                f"Maximum duration is {product.max_duration} day(s)",
                details={"max_duration": product.max_duration, "requested_days": days},
            )
        return days

    def validate_pickup_day(self, section, start_date: date) -> None:
        weekday = day_of_week(start_date)
        if weekday not in (section.allowed_days_out or []):
            raise ValidationError(
                f"Pickups are not allowed on {WEEKDAY_NAMES[weekday]}",
                details={"start_date": to_iso_date(start_date), "allowed_days_out": section.allowed_days_out},
            )

    def validate_return_day(self, section, end_date: date) -> None:
        weekday = day_of_week(end_date)
        if weekday not in (section.allowed_days_in or []):
            raise ValidationError(
                f"Returns are not allowed on {WEEKDAY_NAMES[weekday]}",
                details={"end_date": to_iso_date(end_date), "allowed_days_in": section.allowed_days_in},
            )

    def validate_time_slot(self, session, section_id: int, slot_type: str, on: date, hhmm: str | None) -> None:
        """A weekday without slots of this type accepts any time."""
        if not hhmm:
            return
        slots = (
            session.query(TimeSlot)
            .filter_by(section_id=section_id, type=slot_type, day_of_week=day_of_week(on))
            .all()
        )
        if not slots:
            return
        if any(s.start_time <= hhmm <= s.end_time for s in slots):
            return
        label = "pickup" if slot_type == SLOT_TYPE_CHECKOUT else "return"
        raise ValidationError(
            f"No {label} slot covers {hhmm} on {WEEKDAY_NAMES[day_of_week(on)]}",
            details={"slots": [s.to_dict() for s in slots]},
        )

    def validate_booking_rules(
        self,
        session,
        product: Product,
        start_date: date,
        end_date: date,
        *,
        start_time: str | None = None,
        end_time: str | None = None,
        not_before: date | None = None,
    ) -> int:
        """
        Validate everything except the calendar itself.

        not_before rejects start dates earlier than it (None lets admins
        back-date). Returns the inclusive duration in days.
        """
        if end_date < start_date:
            raise ValidationError("end_date must be on or after start_date")
        if not_before is not None and start_date < not_before:
            raise ValidationError("start_date cannot be in the past")

        days = self.validate_duration(product, start_date, end_date)
        section = product.section
        self.validate_pickup_day(section, start_date)
        self.validate_return_day(section, end_date)
        self.validate_time_slot(session, section.id, SLOT_TYPE_CHECKOUT, start_date, start_time)
        self.validate_time_slot(session, section.id, SLOT_TYPE_RETURN, end_date, end_time)
        return days

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    def get_monthly_availability(self, session, product_id: int, month: str) -> dict:
        """
        Day-by-day calendar of a product for one month ("YYYY-MM").

        Each day reports which blocking reservation covers it (if any),
        whether the section is closed, and whether pickup/return is allowed
        on that weekday.
        """
        try:
            first, last = parse_month(month)
        except ValueError as exc:
            raise ValidationError(str(exc))

        product = self.get_product(session, product_id)
        section = product.section
        reservations = self.find_conflicts(session, product_id, first, last)
        closures = self.find_closures(session, section.id, first, last)

        days = []
        for d in iter_days(first, last):
            weekday = day_of_week(d)
            covering = next((r for r in reservations if r.start_date <= d <= r.end_date), None)
            closure = next((c for c in closures if c.start_date <= d <= c.end_date), None)

            if covering is None:
                status = DAY_STATUS_FREE
            elif covering.status == RESERVATION_STATUS_CHECKED_OUT:
                status = DAY_STATUS_CHECKED_OUT
            else:
                status = DAY_STATUS_RESERVED

            checkout_allowed = weekday in (section.allowed_days_out or []) and closure is None
            return_allowed = weekday in (section.allowed_days_in or []) and closure is None
            days.append({
                "date": to_iso_date(d),
                "day_of_week": weekday,
                "status": status,
                "reservation_id": covering.id if covering else None,
                "closed": closure is not None,
                "closure_reason": closure.reason if closure else None,
                "checkout_allowed": checkout_allowed,
                "return_allowed": return_allowed,
                "blocked": not checkout_allowed and not return_allowed,
            })

        return {
            "product_id": product.id,
            "month": month,
            "days": days,
        }
