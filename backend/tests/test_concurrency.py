"""
Concurrent booking and transition tests.

Two sessions on a file-backed database race for the same product or the
same reservation. The loser reads its rows first, then the winner commits
in the middle of the loser's operation, so only the version counters stand
between the two writes.
"""

from datetime import date

import pytest
from sqlalchemy.orm import Session

from gearbook import create_app
from gearbook.extensions import db
from gearbook.models import CreditTransaction, Product, ProductMovement, Reservation, Section, User
from gearbook.models.reservations import (
    MOVEMENT_TYPE_CHECKOUT,
    MOVEMENT_TYPE_RETURN,
    RESERVATION_STATUS_CHECKED_OUT,
    RESERVATION_STATUS_RETURNED,
)
from gearbook.services.availability_service import AvailabilityResult, AvailabilityService
from gearbook.services.ledger_service import CreditLedger
from gearbook.services.movement_service import MovementRecorder
from gearbook.services.reservation_service import ReservationService
from gearbook.validation import ConflictError

from conftest import NOW, QR_SECRET, fixed_clock


class InterleavedAvailability(AvailabilityService):
    """Runs `interloper` once, in the middle of the first availability check."""

    def __init__(self, interloper):
        self.interloper = interloper
        self.fired = False

    def is_available(self, session, product_id, start_date, end_date, exclude_reservation_id=None):
        if not self.fired:
            self.fired = True
            self.interloper()
            # Answer from the snapshot read before the interloper committed
            return AvailabilityResult(available=True)
        return super().is_available(session, product_id, start_date, end_date, exclude_reservation_id)


class InterleavedMovements(MovementRecorder):
    """Runs `interloper` once, after the reservation was loaded and its status checked."""

    def __init__(self, interloper):
        super().__init__()
        self.interloper = interloper
        self.fired = False

    def create_movement(self, session, **kwargs):
        if not self.fired:
            self.fired = True
            self.interloper()
        return super().create_movement(session, **kwargs)


def build_reservations(availability, movements=None):
    return ReservationService(availability, CreditLedger(), movements or MovementRecorder(), clock=fixed_clock)


@pytest.fixture
def race_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.db'}",
        'SECRET_KEY': 'test-secret',
        'QR_CODE_SECRET': QR_SECRET,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def seeded(race_app):
    with Session(db.engine) as session:
        section = Section(name="Studio", allowed_days_in=list(range(7)), allowed_days_out=list(range(7)))
        session.add(section)
        session.flush()
        product = Product(name="Sony FX3", price_per_period=10, credit_period="DAY", section_id=section.id)
        first = User(email="first@example.org", credit_balance=100)
        second = User(email="second@example.org", credit_balance=100)
        session.add_all([product, first, second])
        session.commit()
        return {"product_id": product.id, "first_id": first.id, "second_id": second.id}


@pytest.fixture
def confirmed_id(seeded):
    with Session(db.engine) as session:
        outcome = build_reservations(AvailabilityService()).create(
            session,
            user_id=seeded["first_id"],
            product_id=seeded["product_id"],
            start_date=date(2026, 3, 9),
            end_date=date(2026, 3, 11),
        )
        return outcome.reservation.id


@pytest.fixture
def checked_out_id(seeded, confirmed_id):
    with Session(db.engine) as session:
        build_reservations(AvailabilityService()).checkout(session, confirmed_id, performed_by=seeded["second_id"])
    return confirmed_id


def race_overlapping_create(seeded):
    """First user books 9-11 March while the second user's 10-12 March create is in flight."""
    session_a = Session(db.engine)
    session_b = Session(db.engine)
    try:
        def first_books():
            build_reservations(AvailabilityService()).create(
                session_a,
                user_id=seeded["first_id"],
                product_id=seeded["product_id"],
                start_date=date(2026, 3, 9),
                end_date=date(2026, 3, 11),
            )

        racing = build_reservations(InterleavedAvailability(first_books))
        with pytest.raises(ConflictError) as exc:
            racing.create(
                session_b,
                user_id=seeded["second_id"],
                product_id=seeded["product_id"],
                start_date=date(2026, 3, 10),
                end_date=date(2026, 3, 12),
            )
        return exc.value
    finally:
        session_a.close()
        session_b.close()


def race_transition(action, reservation_id, seeded):
    """Run `action` on the same reservation in two sessions; the first commits inside the second."""
    session_a = Session(db.engine)
    session_b = Session(db.engine)
    try:
        def first_wins():
            getattr(build_reservations(AvailabilityService()), action)(
                session_a, reservation_id, performed_by=seeded["first_id"]
            )

        racing = build_reservations(AvailabilityService(), InterleavedMovements(first_wins))
        with pytest.raises(ConflictError) as exc:
            getattr(racing, action)(session_b, reservation_id, performed_by=seeded["second_id"])
        return exc.value
    finally:
        session_a.close()
        session_b.close()


class TestOverlappingCreates:
    def test_only_one_booking_wins(self, seeded):
        assert NOW.date() < date(2026, 3, 9)

        error = race_overlapping_create(seeded)
        assert error.details["reason"] == "StaleDataError"

        with Session(db.engine) as check:
            reservations = check.query(Reservation).all()
            assert len(reservations) == 1
            assert reservations[0].user_id == seeded["first_id"]
            assert check.get(User, seeded["first_id"]).credit_balance == 70
            assert check.get(User, seeded["second_id"]).credit_balance == 100
            assert check.query(CreditTransaction).filter_by(user_id=seeded["second_id"]).count() == 0

    def test_conflict_when_clock_repeats_stored_timestamp(self, seeded):
        with Session(db.engine) as session:
            session.get(Product, seeded["product_id"]).last_reserved_at = NOW
            session.commit()

        error = race_overlapping_create(seeded)
        assert error.details["reason"] == "StaleDataError"

        with Session(db.engine) as check:
            assert check.query(Reservation).count() == 1
            product = check.get(Product, seeded["product_id"])
            assert product.last_reserved_at == NOW
            assert product.booking_seq == 1

    def test_retry_after_conflict_sees_the_winner(self, seeded):
        session_a = Session(db.engine)
        session_b = Session(db.engine)
        try:
            def first_books():
                build_reservations(AvailabilityService()).create(
                    session_a,
                    user_id=seeded["first_id"],
                    product_id=seeded["product_id"],
                    start_date=date(2026, 3, 9),
                    end_date=date(2026, 3, 11),
                )

            racing = build_reservations(InterleavedAvailability(first_books))
            kwargs = dict(
                user_id=seeded["second_id"],
                product_id=seeded["product_id"],
                start_date=date(2026, 3, 10),
                end_date=date(2026, 3, 12),
            )
            with pytest.raises(ConflictError):
                racing.create(session_b, **kwargs)

            # Second attempt runs the real check and reports the calendar conflict
            with pytest.raises(ConflictError) as exc:
                racing.create(session_b, **kwargs)
            assert exc.value.details["available"] is False
            assert len(exc.value.details["conflicts"]) == 1
        finally:
            session_a.close()
            session_b.close()


class TestConcurrentTransitions:
    def test_only_one_checkout_wins(self, seeded, confirmed_id):
        error = race_transition("checkout", confirmed_id, seeded)
        assert error.details["reason"] == "StaleDataError"

        with Session(db.engine) as check:
            reservation = check.get(Reservation, confirmed_id)
            assert reservation.status == RESERVATION_STATUS_CHECKED_OUT
            assert reservation.checked_out_by_user_id == seeded["first_id"]
            movements = check.query(ProductMovement).filter_by(reservation_id=confirmed_id).all()
            assert [m.type for m in movements] == [MOVEMENT_TYPE_CHECKOUT]
            assert movements[0].performed_by_user_id == seeded["first_id"]

    def test_only_one_return_wins(self, seeded, checked_out_id):
        error = race_transition("return_product", checked_out_id, seeded)
        assert error.details["reason"] == "StaleDataError"

        with Session(db.engine) as check:
            reservation = check.get(Reservation, checked_out_id)
            assert reservation.status == RESERVATION_STATUS_RETURNED
            assert reservation.returned_by_user_id == seeded["first_id"]
            returns = (
                check.query(ProductMovement)
                .filter_by(reservation_id=checked_out_id, type=MOVEMENT_TYPE_RETURN)
                .all()
            )
            assert len(returns) == 1
            assert returns[0].performed_by_user_id == seeded["first_id"]
