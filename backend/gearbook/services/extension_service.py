# Overview: Service-layer operations for reservation extensions (pushing the end date out).

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from ..models import Product, Reservation, User
from ..models.catalog import SLOT_TYPE_RETURN
from ..models.communications import NOTIFICATION_RESERVATION_EXTENDED
from ..models.credits import CREDIT_TX_EXTENSION_CHARGE
from ..models.reservations import RESERVATION_STATUS_CHECKED_OUT, RESERVATION_STATUS_CONFIRMED
from ..time_utils import day_of_week, to_iso_date, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .audit_service import AUDIT_RESERVATION_EXTEND
from .availability_service import WEEKDAY_NAMES, compute_cost
from .concurrency import atomic, lock_for_update
from .side_effects import best_effort

EXTENDABLE_STATUSES = (RESERVATION_STATUS_CONFIRMED, RESERVATION_STATUS_CHECKED_OUT)

# Reasons an extension is refused
CHECK_INVALID_STATUS = "INVALID_STATUS"
CHECK_INVALID_DATE = "INVALID_DATE"
CHECK_INVALID_RETURN_DAY = "INVALID_RETURN_DAY"
CHECK_INVALID_RETURN_TIME = "INVALID_RETURN_TIME"
CHECK_SECTION_CLOSED = "SECTION_CLOSED"
CHECK_RESERVATION_CONFLICT = "RESERVATION_CONFLICT"
CHECK_INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"

CONFLICT_CODES = {CHECK_SECTION_CLOSED, CHECK_RESERVATION_CONFLICT}


@dataclass
class ExtensionCheck:
    possible: bool
    new_end_date: date
    code: str | None = None
    reason: str | None = None
    additional_days: int = 0
    additional_cost: int = 0
    balance: int | None = None
    blocking_reservation: Reservation | None = None
    latest_possible_end_date: date | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        blocking = self.blocking_reservation
        return {
            "possible": self.possible,
            "code": self.code,
            "reason": self.reason,
            "new_end_date": to_iso_date(self.new_end_date),
            "additional_days": self.additional_days,
            "additional_cost": self.additional_cost,
            "balance": self.balance,
            "blocking_reservation": (
                {
                    "id": blocking.id,
                    "start_date": to_iso_date(blocking.start_date),
                    "end_date": to_iso_date(blocking.end_date),
                }
                if blocking is not None
                else None
            ),
            "latest_possible_end_date": to_iso_date(self.latest_possible_end_date),
            **self.details,
        }


class ExtensionEngine:
    """
    Extends CONFIRMED or CHECKED_OUT reservations.

    Only the added days (current end, new end] are checked against the
    calendar, excluding the reservation itself. The extra days are priced
    like a booking of that length and debited as EXTENSION_CHARGE.
    """

    def __init__(self, availability, ledger, *, audit=None, notifier=None, clock=utcnow):
        self.availability = availability
        self.ledger = ledger
        self.audit = audit
        self.notifier = notifier
        self.clock = clock

    def _load(self, session, reservation_id: int, *, owner_id: int | None = None, lock: bool = False) -> Reservation:
        query = session.query(Reservation).filter(Reservation.id == reservation_id)
        if owner_id is not None:
            query = query.filter(Reservation.user_id == owner_id)
        if lock:
            query = lock_for_update(query)
        reservation = query.first()
        if not reservation:
            raise NotFoundError("Reservation not found", details={"reservation_id": reservation_id})
        return reservation

    def _evaluate(self, session, reservation: Reservation, product: Product, user: User, new_end_date: date) -> ExtensionCheck:
        if reservation.status not in EXTENDABLE_STATUSES:
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_INVALID_STATUS,
                reason=f"Cannot extend a reservation in status {reservation.status}",
            )
        if new_end_date <= reservation.end_date:
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_INVALID_DATE,
                reason="The new end date must be after the current end date",
            )

        section = product.section
        weekday = day_of_week(new_end_date)
        if weekday not in (section.allowed_days_in or []):
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_INVALID_RETURN_DAY,
                reason=f"Returns are not allowed on {WEEKDAY_NAMES[weekday]}",
                details={"allowed_days_in": list(section.allowed_days_in or [])},
            )
        try:
            self.availability.validate_time_slot(
                session, section.id, SLOT_TYPE_RETURN, new_end_date, reservation.end_time
            )
        except ValidationError as exc:
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_INVALID_RETURN_TIME,
                reason=exc.message,
            )

        delta_start = reservation.end_date + timedelta(days=1)
        result = self.availability.is_available(
            session, product.id, delta_start, new_end_date, exclude_reservation_id=reservation.id
        )
        if result.conflicts:
            blocking = result.conflicts[0]
            latest = blocking.start_date - timedelta(days=1)
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_RESERVATION_CONFLICT,
                reason="The product is already reserved during that period",
                blocking_reservation=blocking,
                latest_possible_end_date=latest if latest > reservation.end_date else None,
            )
        if result.closures:
            closure = result.closures[0]
            latest = closure.start_date - timedelta(days=1)
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_SECTION_CLOSED,
                reason=f"The section is closed: {closure.reason}",
                latest_possible_end_date=latest if latest > reservation.end_date else None,
                details={"closure": closure.to_dict()},
            )

        additional_days = (new_end_date - reservation.end_date).days
        cost = compute_cost(product, additional_days)
        if user.credit_balance < cost:
            return ExtensionCheck(
                possible=False,
                new_end_date=new_end_date,
                code=CHECK_INSUFFICIENT_CREDITS,
                reason="Insufficient credits",
                additional_days=additional_days,
                additional_cost=cost,
                balance=user.credit_balance,
                details={"missing": cost - user.credit_balance},
            )

        return ExtensionCheck(
            possible=True,
            new_end_date=new_end_date,
            additional_days=additional_days,
            additional_cost=cost,
            balance=user.credit_balance,
        )

    def check_extension_possible(
        self,
        session,
        reservation_id: int,
        new_end_date: date,
        *,
        owner_id: int | None = None,
    ) -> ExtensionCheck:
        """Read-only check; unknown (or non-owned) reservations raise NotFoundError."""
        if new_end_date is None:
            raise ValidationError("new_end_date is required")
        reservation = self._load(session, reservation_id, owner_id=owner_id)
        return self._evaluate(session, reservation, reservation.product, reservation.user, new_end_date)

    def extend(
        self,
        session,
        reservation_id: int,
        *,
        user_id: int,
        new_end_date: date,
        owner_id: int | None = None,
    ) -> Reservation:
        """
        Re-run the check under lock and apply it in one unit of work.

        A refused check raises ConflictError (calendar or closure) or
        ValidationError (everything else) carrying the check as details.
        """
        if new_end_date is None:
            raise ValidationError("new_end_date is required")

        with atomic(session):
            reservation = self._load(session, reservation_id, owner_id=owner_id, lock=True)
            product = lock_for_update(session.query(Product).filter(Product.id == reservation.product_id)).first()
            user = lock_for_update(session.query(User).filter(User.id == reservation.user_id)).first()

            check = self._evaluate(session, reservation, product, user, new_end_date)
            if not check.possible:
                error_cls = ConflictError if check.code in CONFLICT_CODES else ValidationError
                raise error_cls(check.reason, details=check.to_dict())

            original_end = reservation.end_date
            product.mark_reserved(self.clock())
            if check.additional_cost > 0:
                self.ledger.adjust(
                    session,
                    reservation.user_id,
                    -check.additional_cost,
                    reason=f"Extension of reservation #{reservation.id}: {product.name}",
                    performed_by=user_id,
                    transaction_type=CREDIT_TX_EXTENSION_CHARGE,
                    reservation_id=reservation.id,
                    metadata={
                        "reservation_id": reservation.id,
                        "original_end_date": to_iso_date(original_end),
                        "new_end_date": to_iso_date(new_end_date),
                    },
                )
            reservation.end_date = new_end_date
            reservation.extension_count += 1
            reservation.total_extension_cost += check.additional_cost
            reservation.credits_charged += check.additional_cost

        metadata = {
            "original_end_date": to_iso_date(original_end),
            "new_end_date": to_iso_date(new_end_date),
            "extension_days": check.additional_days,
            "extension_cost": check.additional_cost,
        }
        if self.audit is not None:
            best_effort(
                "audit extension",
                self.audit.log,
                session,
                performed_by=user_id,
                action=AUDIT_RESERVATION_EXTEND,
                target_type="Reservation",
                target_id=reservation.id,
                user_id=reservation.user_id,
                metadata=metadata,
            )
        if self.notifier is not None:
            best_effort(
                "notify extension",
                self.notifier.notify,
                session,
                user_id=reservation.user_id,
                type=NOTIFICATION_RESERVATION_EXTENDED,
                title="Reservation extended",
                message=(
                    f"Your reservation of {reservation.product.name} now ends on "
                    f"{to_iso_date(new_end_date)} ({check.additional_cost} credits)."
                ),
                metadata={"reservation_id": reservation.id, **metadata},
            )
        return reservation
