# Overview: Reservation lifecycle state machine; orchestrates availability, credits and movements.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from ..models import CreditTransaction, Product, ProductMovement, Reservation, User
from ..models.auth import USER_STATUS_ACTIVE
from ..models.catalog import PRODUCT_STATUS_AVAILABLE
from ..models.communications import (
    NOTIFICATION_CREDIT_REMOVED,
    NOTIFICATION_RESERVATION_CANCELLED,
    NOTIFICATION_RESERVATION_CHECKOUT,
    NOTIFICATION_RESERVATION_CONFIRMED,
    NOTIFICATION_RESERVATION_REFUNDED,
    NOTIFICATION_RESERVATION_RETURN,
)
from ..models.credits import CREDIT_TX_PENALTY, CREDIT_TX_REFUND, CREDIT_TX_RESERVATION_CHARGE
from ..models.reservations import (
    MOVEMENT_TYPE_CHECKOUT,
    MOVEMENT_TYPE_RETURN,
    RESERVATION_STATUS_CANCELLED,
    RESERVATION_STATUS_CHECKED_OUT,
    RESERVATION_STATUS_CONFIRMED,
    RESERVATION_STATUS_REFUNDED,
    RESERVATION_STATUS_RETURNED,
    RESERVATION_STATUSES,
)
from ..time_utils import combine, to_iso_date, utcnow
from ..validation import ConflictError, ForbiddenError, InvalidQRCodeError, NotFoundError, ValidationError
from . import audit_service as audit_actions
from .availability_service import compute_cost
from .concurrency import atomic, lock_for_update
from .side_effects import best_effort

"""
Reservation Lifecycle (authoritative)

    CONFIRMED -> CHECKED_OUT -> RETURNED
    CONFIRMED -> CANCELLED

- Every operation is one unit of work: the status check, ledger writes,
  movement rows and the reservation update commit together or not at all.
- The status precondition is re-read under lock inside the unit of work;
  a concurrent transition loses on the reservation's version_id and
  surfaces as ConflictError.
- Refund and penalty are ledger operations recorded on the reservation
  (refund_amount / penalty_amount). They never change status.
- Audit and notification run after commit and never fail the operation.
"""

DEFAULT_REFUND_DEADLINE_HOURS = 48

OVERDUE_CHECKOUTS = "checkouts"
OVERDUE_RETURNS = "returns"


@dataclass
class ReservationOutcome:
    """Result of a lifecycle operation: the reservation plus the rows it produced."""
    reservation: Reservation
    movement: ProductMovement | None = None
    transaction: CreditTransaction | None = None

    def to_dict(self, *, qr_code: str | None = None, url_for_key=None) -> dict:
        return {
            "reservation": self.reservation.to_dict(qr_code=qr_code),
            "movement": self.movement.to_dict(url_for_key=url_for_key) if self.movement else None,
            "transaction": self.transaction.to_dict() if self.transaction else None,
        }


class ReservationService:
    def __init__(
        self,
        availability,
        ledger,
        movements,
        *,
        audit=None,
        notifier=None,
        qr_codec=None,
        default_refund_deadline_hours: int = DEFAULT_REFUND_DEADLINE_HOURS,
        clock=utcnow,
    ):
        self.availability = availability
        self.ledger = ledger
        self.movements = movements
        self.audit = audit
        self.notifier = notifier
        self.qr_codec = qr_codec
        self.default_refund_deadline_hours = default_refund_deadline_hours
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

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

    @staticmethod
    def _require_status(reservation: Reservation, required: str, action: str) -> None:
        if reservation.status != required:
            raise ValidationError(
                f"Cannot {action} a reservation in status {reservation.status}",
                details={"status": reservation.status, "required_status": required},
            )

    @staticmethod
    def _positive_amount(amount, field: str = "amount") -> int:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
            raise ValidationError(f"{field} must be a positive integer")
        return amount

    def _emit(
        self,
        session,
        reservation: Reservation,
        *,
        action: str,
        performed_by: int | None,
        metadata: dict | None = None,
        notification: str | None = None,
        title: str | None = None,
        message: str | None = None,
    ) -> None:
        """Audit + notification after commit; both best-effort."""
        reservation_id = reservation.id
        user_id = reservation.user_id
        if self.audit is not None:
            best_effort(
                f"audit {action}",
                self.audit.log,
                session,
                performed_by=performed_by,
                action=action,
                target_type="Reservation",
                target_id=reservation_id,
                user_id=user_id,
                metadata=metadata,
            )
        if self.notifier is not None and notification:
            best_effort(
                f"notify {notification}",
                self.notifier.notify,
                session,
                user_id=user_id,
                type=notification,
                title=title,
                message=message,
                metadata={"reservation_id": reservation_id, **(metadata or {})},
            )

    def refund_deadline(self, reservation: Reservation) -> datetime:
        section = reservation.product.section
        hours = section.refund_deadline_hours
        if hours is None:
            hours = self.default_refund_deadline_hours
        return combine(reservation.start_date, reservation.start_time) - timedelta(hours=hours)

    def qr_code_for(self, reservation: Reservation) -> str | None:
        if self.qr_codec is None or reservation.id is None:
            return None
        return self.qr_codec.generate(reservation.id, reservation.user_id)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(
        self,
        session,
        *,
        user_id: int,
        product_id: int,
        start_date: date,
        end_date: date,
        start_time: str | None = None,
        end_time: str | None = None,
        notes: str | None = None,
        admin_notes: str | None = None,
        created_by: int | None = None,
        is_admin: bool = False,
    ) -> ReservationOutcome:
        """
        Book a product and charge the user, in one unit of work.

        Order inside the transaction: lock user and product, validate rules,
        check the calendar, touch the product (its version_id makes two
        overlapping concurrent creates collide), insert, then debit. An
        insufficient balance rolls the whole booking back.
        """
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")
        if end_date < start_date:
            raise ValidationError("end_date must be on or after start_date")
        actor = created_by if created_by is not None else user_id

        with atomic(session):
            user = lock_for_update(session.query(User).filter(User.id == user_id)).first()
            if not user:
                raise NotFoundError("User not found", details={"user_id": user_id})
            if user.status != USER_STATUS_ACTIVE:
                raise ForbiddenError("User account is not active", details={"status": user.status})

            product = lock_for_update(session.query(Product).filter(Product.id == product_id)).first()
            if not product:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            if product.status != PRODUCT_STATUS_AVAILABLE:
                raise ValidationError(
                    "Product is not available for reservation",
                    details={"product_status": product.status},
                )

            now = self.clock()
            days = self.availability.validate_booking_rules(
                session,
                product,
                start_date,
                end_date,
                start_time=start_time,
                end_time=end_time,
                not_before=None if is_admin else now.date(),
            )

            result = self.availability.is_available(session, product.id, start_date, end_date)
            if not result.available:
                raise ConflictError(
                    "Product is not available for the selected dates",
                    details=result.to_dict(),
                )

            cost = compute_cost(product, days)
            product.mark_reserved(now)

            reservation = Reservation(
                user_id=user.id,
                product_id=product.id,
                start_date=start_date,
                end_date=end_date,
                start_time=start_time,
                end_time=end_time,
                status=RESERVATION_STATUS_CONFIRMED,
                credits_charged=cost,
                notes=notes,
                admin_notes=admin_notes if is_admin else None,
                created_by_user_id=actor,
                created_at=now,
            )
            session.add(reservation)
            session.flush()

            transaction = None
            if cost > 0:
                transaction = self.ledger.adjust(
                    session,
                    user.id,
                    -cost,
                    reason=f"Reservation #{reservation.id}: {product.name}",
                    performed_by=actor,
                    transaction_type=CREDIT_TX_RESERVATION_CHARGE,
                    reservation_id=reservation.id,
                    metadata={"reservation_id": reservation.id, "product_id": product.id, "days": days},
                ).transaction

        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_CREATE,
            performed_by=actor,
            metadata={
                "product_id": reservation.product_id,
                "start_date": to_iso_date(reservation.start_date),
                "end_date": to_iso_date(reservation.end_date),
                "credits_charged": cost,
                "is_admin": is_admin,
            },
            notification=NOTIFICATION_RESERVATION_CONFIRMED,
            title="Reservation confirmed",
            message=(
                f"Your reservation of {reservation.product.name} from {to_iso_date(reservation.start_date)} "
                f"to {to_iso_date(reservation.end_date)} is confirmed ({cost} credits)."
            ),
        )
        return ReservationOutcome(reservation=reservation, transaction=transaction)

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update(
        self,
        session,
        reservation_id: int,
        *,
        performed_by: int,
        start_date: date | None = None,
        end_date: date | None = None,
        notes: str | None = None,
        admin_notes: str | None = None,
    ) -> ReservationOutcome:
        """
        Administrative edit. Date changes are re-validated against the
        booking rules and the calendar (excluding this reservation). Charges
        are not recomputed.
        """
        changes: dict = {}
        with atomic(session):
            reservation = self._load(session, reservation_id, lock=True)
            if reservation.status in (RESERVATION_STATUS_CANCELLED, RESERVATION_STATUS_RETURNED):
                raise ValidationError(
                    f"Cannot modify a reservation in status {reservation.status}",
                    details={"status": reservation.status},
                )

            new_start = start_date or reservation.start_date
            new_end = end_date or reservation.end_date
            if new_start != reservation.start_date and reservation.status == RESERVATION_STATUS_CHECKED_OUT:
                raise ValidationError("Cannot move the start date of a checked-out reservation")

            if (new_start, new_end) != (reservation.start_date, reservation.end_date):
                product = lock_for_update(
                    session.query(Product).filter(Product.id == reservation.product_id)
                ).first()
                self.availability.validate_booking_rules(
                    session,
                    product,
                    new_start,
                    new_end,
                    start_time=reservation.start_time,
                    end_time=reservation.end_time,
                )
                result = self.availability.is_available(
                    session, product.id, new_start, new_end, exclude_reservation_id=reservation.id
                )
                if not result.available:
                    raise ConflictError(
                        "Product is not available for the selected dates",
                        details=result.to_dict(),
                    )
                product.mark_reserved(self.clock())
                changes["start_date"] = [to_iso_date(reservation.start_date), to_iso_date(new_start)]
                changes["end_date"] = [to_iso_date(reservation.end_date), to_iso_date(new_end)]
                reservation.start_date = new_start
                reservation.end_date = new_end

            if notes is not None and notes != reservation.notes:
                changes["notes"] = True
                reservation.notes = notes
            if admin_notes is not None and admin_notes != reservation.admin_notes:
                changes["admin_notes"] = True
                reservation.admin_notes = admin_notes

            if not changes:
                raise ValidationError("No changes supplied")

        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_UPDATE,
            performed_by=performed_by,
            metadata={"changes": changes},
        )
        return ReservationOutcome(reservation=reservation)

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    def cancel(
        self,
        session,
        reservation_id: int,
        *,
        cancelled_by: int,
        reason: str | None = None,
        owner_id: int | None = None,
    ) -> ReservationOutcome:
        """
        CONFIRMED -> CANCELLED.

        Before the section's refund deadline the whole refundable amount is
        credited back; after it nothing is refunded automatically.
        """
        with atomic(session):
            reservation = self._load(session, reservation_id, owner_id=owner_id, lock=True)
            self._require_status(reservation, RESERVATION_STATUS_CONFIRMED, "cancel")

            now = self.clock()
            transaction = None
            refundable = reservation.refundable_amount
            if refundable > 0 and now < self.refund_deadline(reservation):
                transaction = self.ledger.adjust(
                    session,
                    reservation.user_id,
                    refundable,
                    reason=f"Refund for cancelled reservation #{reservation.id}",
                    performed_by=cancelled_by,
                    transaction_type=CREDIT_TX_REFUND,
                    reservation_id=reservation.id,
                    metadata={"reservation_id": reservation.id, "automatic": True},
                ).transaction
                reservation.refund_amount += refundable
                reservation.refunded_at = now
                reservation.refunded_by_user_id = cancelled_by

            reservation.status = RESERVATION_STATUS_CANCELLED
            reservation.cancelled_at = now
            reservation.cancelled_by_user_id = cancelled_by
            reservation.cancel_reason = reason

        refunded = transaction.amount if transaction else 0
        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_CANCEL,
            performed_by=cancelled_by,
            metadata={"reason": reason, "refunded": refunded},
            notification=NOTIFICATION_RESERVATION_CANCELLED,
            title="Reservation cancelled",
            message=(
                f"Your reservation #{reservation.id} was cancelled."
                + (f" {refunded} credits were refunded." if refunded else " No automatic refund applies.")
            ),
        )
        return ReservationOutcome(reservation=reservation, transaction=transaction)

    # ------------------------------------------------------------------
    # checkout / return
    # ------------------------------------------------------------------

    def checkout(
        self,
        session,
        reservation_id: int,
        *,
        performed_by: int,
        notes: str | None = None,
        condition: str | None = None,
        photos: list[dict] | None = None,
    ) -> ReservationOutcome:
        """CONFIRMED -> CHECKED_OUT with exactly one CHECKOUT movement."""
        with atomic(session):
            reservation = self._load(session, reservation_id, lock=True)
            self._require_status(reservation, RESERVATION_STATUS_CONFIRMED, "check out")

            movement = self.movements.create_movement(
                session,
                product_id=reservation.product_id,
                reservation_id=reservation.id,
                type=MOVEMENT_TYPE_CHECKOUT,
                condition=condition,
                notes=notes,
                photos=photos,
                performed_by=performed_by,
            )
            reservation.status = RESERVATION_STATUS_CHECKED_OUT
            reservation.checked_out_at = movement.performed_at
            reservation.checked_out_by_user_id = performed_by

        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_CHECKOUT,
            performed_by=performed_by,
            metadata={"movement_id": movement.id, "condition": movement.condition},
            notification=NOTIFICATION_RESERVATION_CHECKOUT,
            title="Equipment picked up",
            message=(
                f"{reservation.product.name} was checked out. "
                f"Please return it by {to_iso_date(reservation.end_date)}."
            ),
        )
        return ReservationOutcome(reservation=reservation, movement=movement)

    def return_product(
        self,
        session,
        reservation_id: int,
        *,
        performed_by: int,
        condition: str | None = None,
        notes: str | None = None,
        photos: list[dict] | None = None,
    ) -> ReservationOutcome:
        """
        CHECKED_OUT -> RETURNED with one RETURN movement.

        A damage condition is recorded on the movement and the product; it
        does not charge a penalty.
        """
        with atomic(session):
            reservation = self._load(session, reservation_id, lock=True)
            self._require_status(reservation, RESERVATION_STATUS_CHECKED_OUT, "return")

            movement = self.movements.create_movement(
                session,
                product_id=reservation.product_id,
                reservation_id=reservation.id,
                type=MOVEMENT_TYPE_RETURN,
                condition=condition,
                notes=notes,
                photos=photos,
                performed_by=performed_by,
            )
            reservation.status = RESERVATION_STATUS_RETURNED
            reservation.returned_at = movement.performed_at
            reservation.returned_by_user_id = performed_by

        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_RETURN,
            performed_by=performed_by,
            metadata={
                "movement_id": movement.id,
                "condition": movement.condition,
                "photo_count": len(movement.photos),
            },
            notification=NOTIFICATION_RESERVATION_RETURN,
            title="Equipment returned",
            message=f"{reservation.product.name} was returned (condition: {movement.condition}).",
        )
        return ReservationOutcome(reservation=reservation, movement=movement)

    # ------------------------------------------------------------------
    # refund / penalty
    # ------------------------------------------------------------------

    def refund(
        self,
        session,
        reservation_id: int,
        *,
        performed_by: int,
        amount: int | None = None,
        reason: str | None = None,
    ) -> ReservationOutcome:
        """
        Credit the owner back without touching the status.

        amount defaults to whatever is still refundable; the cumulative
        refund never exceeds credits_charged.
        """
        with atomic(session):
            reservation = self._load(session, reservation_id, lock=True)
            refundable = reservation.refundable_amount
            if refundable <= 0:
                raise ValidationError(
                    "Nothing left to refund on this reservation",
                    details={"credits_charged": reservation.credits_charged, "refund_amount": reservation.refund_amount},
                )
            amount = refundable if amount is None else self._positive_amount(amount)
            if amount > refundable:
                raise ValidationError(
                    f"Refund cannot exceed {refundable} credits",
                    details={"refundable": refundable},
                )

            now = self.clock()
            transaction = self.ledger.adjust(
                session,
                reservation.user_id,
                amount,
                reason=reason or f"Refund for reservation #{reservation.id}",
                performed_by=performed_by,
                transaction_type=CREDIT_TX_REFUND,
                reservation_id=reservation.id,
                metadata={"reservation_id": reservation.id, "automatic": False},
            ).transaction
            reservation.refund_amount += amount
            reservation.refunded_at = now
            reservation.refunded_by_user_id = performed_by

        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_REFUND,
            performed_by=performed_by,
            metadata={"amount": amount, "reason": reason},
            notification=NOTIFICATION_RESERVATION_REFUNDED,
            title="Credits refunded",
            message=f"{amount} credits were refunded for reservation #{reservation.id}.",
        )
        return ReservationOutcome(reservation=reservation, transaction=transaction)

    def penalty(
        self,
        session,
        reservation_id: int,
        *,
        performed_by: int,
        amount: int,
        reason: str,
    ) -> ReservationOutcome:
        """
        Debit the owner, explicitly allowing the balance to go negative.

        This is the only lifecycle path that runs the ledger in
        allow-negative mode.
        """
        amount = self._positive_amount(amount)
        if not reason or not reason.strip():
            raise ValidationError("reason is required for a penalty")
        reason = reason.strip()

        with atomic(session):
            reservation = self._load(session, reservation_id, lock=True)
            transaction = self.ledger.adjust(
                session,
                reservation.user_id,
                -amount,
                reason=reason,
                performed_by=performed_by,
                transaction_type=CREDIT_TX_PENALTY,
                reservation_id=reservation.id,
                metadata={"reservation_id": reservation.id},
                allow_negative=True,
            ).transaction
            reservation.penalty_amount += amount

        self._emit(
            session,
            reservation,
            action=audit_actions.AUDIT_RESERVATION_PENALTY,
            performed_by=performed_by,
            metadata={"amount": amount, "reason": reason, "balance_after": transaction.balance_after},
            notification=NOTIFICATION_CREDIT_REMOVED,
            title="Penalty applied",
            message=f"A penalty of {amount} credits was applied for reservation #{reservation.id}: {reason}",
        )
        return ReservationOutcome(reservation=reservation, transaction=transaction)

    # ------------------------------------------------------------------
    # QR scan entry points
    # ------------------------------------------------------------------

    def resolve_qr(self, session, payload: str) -> Reservation:
        if self.qr_codec is None:
            raise InvalidQRCodeError("QR codes are not configured")
        reservation_id, user_id = self.qr_codec.verify(payload)
        reservation = self._load(session, reservation_id)
        if reservation.user_id != user_id:
            raise InvalidQRCodeError("QR code does not match the reservation owner")
        return reservation

    def scan_checkout(self, session, payload: str, *, performed_by: int, notes: str | None = None) -> ReservationOutcome:
        reservation = self.resolve_qr(session, payload)
        return self.checkout(session, reservation.id, performed_by=performed_by, notes=notes)

    def scan_return(
        self,
        session,
        payload: str,
        *,
        performed_by: int,
        condition: str | None = None,
        notes: str | None = None,
        photos: list[dict] | None = None,
    ) -> ReservationOutcome:
        reservation = self.resolve_qr(session, payload)
        return self.return_product(
            session,
            reservation.id,
            performed_by=performed_by,
            condition=condition,
            notes=notes,
            photos=photos,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, session, reservation_id: int, *, owner_id: int | None = None) -> Reservation:
        return self._load(session, reservation_id, owner_id=owner_id)

    def list_reservations(
        self,
        session,
        *,
        owner_id: int | None = None,
        status: str | None = None,
        product_id: int | None = None,
        user_id: int | None = None,
        start_from: date | None = None,
        start_to: date | None = None,
        overdue: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """
        Paginated listing. owner_id restricts to one user's rows (self-service);
        status REFUNDED matches reservations with a recorded refund.
        """
        page = max(page or 1, 1)
        limit = min(max(limit or 20, 1), 100)
        query = session.query(Reservation)

        if owner_id is not None:
            query = query.filter(Reservation.user_id == owner_id)
        if user_id is not None:
            query = query.filter(Reservation.user_id == user_id)
        if product_id is not None:
            query = query.filter(Reservation.product_id == product_id)
        if status is not None:
            if status not in RESERVATION_STATUSES:
                raise ValidationError(f"Unknown status '{status}'")
            if status == RESERVATION_STATUS_REFUNDED:
                query = query.filter(Reservation.refunded_at.isnot(None))
            else:
                query = query.filter(Reservation.status == status)
        if start_from is not None:
            query = query.filter(Reservation.start_date >= start_from)
        if start_to is not None:
            query = query.filter(Reservation.start_date <= start_to)

        if overdue is not None:
            current = self.clock().date()
            if overdue == OVERDUE_CHECKOUTS:
                query = query.filter(
                    Reservation.status == RESERVATION_STATUS_CONFIRMED,
                    Reservation.start_date < current,
                )
            elif overdue == OVERDUE_RETURNS:
                query = query.filter(
                    Reservation.status == RESERVATION_STATUS_CHECKED_OUT,
                    Reservation.end_date < current,
                )
            else:
                raise ValidationError("overdue must be 'checkouts' or 'returns'")

        total = query.count()
        rows = (
            query.order_by(Reservation.start_date.desc(), Reservation.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": rows, "page": page, "limit": limit, "total": total}
