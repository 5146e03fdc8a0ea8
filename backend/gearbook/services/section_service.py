# Overview: Service-layer operations for section closures and pickup/return time slots.

from __future__ import annotations

from datetime import date

from sqlalchemy import or_

from ..models import Product, Reservation, Section, SectionClosure, TimeSlot
from ..models.catalog import SLOT_TYPE_CHECKOUT, SLOT_TYPE_RETURN
from ..models.reservations import BLOCKING_STATUSES
from ..time_utils import to_iso_date, today
from ..validation import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .audit_service import AUDIT_SECTION_CLOSURE_CREATE, AUDIT_SECTION_CLOSURE_DELETE
from .concurrency import atomic
from .side_effects import best_effort

SLOT_TYPES = {SLOT_TYPE_CHECKOUT, SLOT_TYPE_RETURN}


class SectionService:
    def __init__(self, audit=None):
        self.audit = audit

    def _get_section(self, session, section_id: int) -> Section:
        section = session.get(Section, section_id)
        if not section:
            raise NotFoundError("Section not found", details={"section_id": section_id})
        return section

    def _audit(self, session, **kwargs) -> None:
        if self.audit is not None:
            best_effort(f"audit {kwargs.get('action')}", self.audit.log, session, **kwargs)

    # ------------------------------------------------------------------
    # Closures
    # ------------------------------------------------------------------

    def affected_reservations(self, session, section_id: int, start_date: date, end_date: date) -> list[Reservation]:
        """Blocking reservations whose pickup or return day falls inside the range."""
        return (
            session.query(Reservation)
            .join(Product, Product.id == Reservation.product_id)
            .filter(
                Product.section_id == section_id,
                Reservation.status.in_(BLOCKING_STATUSES),
                or_(
                    Reservation.start_date.between(start_date, end_date),
                    Reservation.end_date.between(start_date, end_date),
                ),
            )
            .order_by(Reservation.start_date.asc())
            .all()
        )

    def create_closure(
        self,
        session,
        section_id: int,
        *,
        start_date: date,
        end_date: date,
        reason: str,
        created_by: int | None = None,
    ) -> tuple[SectionClosure, list[Reservation]]:
        """
        Close a section for an inclusive date range.

        Returns the closure and the existing reservations it affects; those
        reservations are kept, the admin decides what to do with them.
        """
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")
        if end_date < start_date:
            raise ValidationError("end_date must be on or after start_date")
        if not reason or not reason.strip():
            raise ValidationError("reason is required")

        with atomic(session):
            section = self._get_section(session, section_id)
            if section.is_system:
                raise ForbiddenError("System sections cannot be closed")

            overlapping = (
                session.query(SectionClosure)
                .filter(
                    SectionClosure.section_id == section.id,
                    SectionClosure.start_date <= end_date,
                    SectionClosure.end_date >= start_date,
                )
                .first()
            )
            if overlapping:
                raise ConflictError(
                    "This closure overlaps an existing closure",
                    details={"closure": overlapping.to_dict()},
                )

            closure = SectionClosure(
                section_id=section.id,
                start_date=start_date,
                end_date=end_date,
                reason=reason.strip(),
                created_by_user_id=created_by,
            )
            session.add(closure)

        affected = self.affected_reservations(session, section_id, start_date, end_date)
        self._audit(
            session,
            performed_by=created_by,
            action=AUDIT_SECTION_CLOSURE_CREATE,
            target_type="SectionClosure",
            target_id=closure.id,
            metadata={
                "section_id": section_id,
                "start_date": to_iso_date(start_date),
                "end_date": to_iso_date(end_date),
                "affected_reservations": [r.id for r in affected],
            },
        )
        return closure, affected

    def delete_closure(self, session, section_id: int, closure_id: int, *, deleted_by: int | None = None) -> None:
        with atomic(session):
            section = self._get_section(session, section_id)
            if section.is_system:
                raise ForbiddenError("System sections cannot be modified")
            closure = session.query(SectionClosure).filter_by(id=closure_id, section_id=section.id).first()
            if not closure:
                raise NotFoundError("Closure not found", details={"closure_id": closure_id})
            snapshot = closure.to_dict()
            session.delete(closure)

        self._audit(
            session,
            performed_by=deleted_by,
            action=AUDIT_SECTION_CLOSURE_DELETE,
            target_type="SectionClosure",
            target_id=closure_id,
            metadata=snapshot,
        )

    def list_closures(self, session, section_id: int, *, include_expired: bool = False) -> list[SectionClosure]:
        self._get_section(session, section_id)
        query = session.query(SectionClosure).filter(SectionClosure.section_id == section_id)
        if not include_expired:
            query = query.filter(SectionClosure.end_date >= today())
        return query.order_by(SectionClosure.start_date.asc()).all()

    def closures_for_range(self, session, section_id: int, start_date: date, end_date: date) -> list[SectionClosure]:
        return (
            session.query(SectionClosure)
            .filter(
                SectionClosure.section_id == section_id,
                SectionClosure.start_date <= end_date,
                SectionClosure.end_date >= start_date,
            )
            .order_by(SectionClosure.start_date.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Time slots
    # ------------------------------------------------------------------

    def create_time_slot(
        self,
        session,
        section_id: int,
        *,
        type: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
    ) -> TimeSlot:
        if type not in SLOT_TYPES:
            raise ValidationError("type must be CHECKOUT or RETURN")
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        if not start_time or not end_time:
            raise ValidationError("start_time and end_time are required")
        if end_time <= start_time:
            raise ValidationError("end_time must be after start_time")

        with atomic(session):
            section = self._get_section(session, section_id)
            if section.is_system:
                raise ForbiddenError("System sections cannot be modified")

            overlapping = (
                session.query(TimeSlot)
                .filter(
                    TimeSlot.section_id == section.id,
                    TimeSlot.type == type,
                    TimeSlot.day_of_week == day_of_week,
                    TimeSlot.start_time < end_time,
                    TimeSlot.end_time > start_time,
                )
                .first()
            )
            if overlapping:
                raise ConflictError(
                    "This time slot overlaps an existing slot",
                    details={"slot": overlapping.to_dict()},
                )

            slot = TimeSlot(
                section_id=section.id,
                type=type,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
            )
            session.add(slot)
        return slot

    def list_time_slots(self, session, section_id: int, *, type: str | None = None) -> list[TimeSlot]:
        self._get_section(session, section_id)
        query = session.query(TimeSlot).filter(TimeSlot.section_id == section_id)
        if type is not None:
            if type not in SLOT_TYPES:
                raise ValidationError("type must be CHECKOUT or RETURN")
            query = query.filter(TimeSlot.type == type)
        return query.order_by(TimeSlot.type.asc(), TimeSlot.day_of_week.asc(), TimeSlot.start_time.asc()).all()

    def delete_time_slot(self, session, section_id: int, slot_id: int) -> None:
        with atomic(session):
            section = self._get_section(session, section_id)
            if section.is_system:
                raise ForbiddenError("System sections cannot be modified")
            slot = session.query(TimeSlot).filter_by(id=slot_id, section_id=section.id).first()
            if not slot:
                raise NotFoundError("Time slot not found", details={"slot_id": slot_id})
            session.delete(slot)
