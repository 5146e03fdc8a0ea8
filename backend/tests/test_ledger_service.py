"""
Credit ledger tests.

Verifies:
- balance == sum(transactions) after any sequence of adjustments
- Balances never go negative except through an explicit PENALTY
- Administrative adjustments are audited and notified
"""

import pytest

from gearbook.models import CreditTransaction, User
from gearbook.services.ledger_service import AUDIT_CREDIT_ADJUST
from gearbook.validation import NotFoundError, ValidationError


def ledger_sum(session, user_id):
    return sum(t.amount for t in session.query(CreditTransaction).filter_by(user_id=user_id).all())


class TestAdjust:
    def test_credit_and_debit(self, db_session, ledger, member):
        entry = ledger.adjust(db_session, member.id, -30, reason="Booking")
        db_session.commit()

        assert entry.transaction.balance_after == 70
        assert entry.transaction.type == "ADJUSTMENT"
        assert db_session.get(User, member.id).credit_balance == 70
        assert ledger_sum(db_session, member.id) == 70

    def test_insufficient_credits(self, db_session, ledger, member):
        with pytest.raises(ValidationError, match="Insufficient credits") as exc:
            ledger.adjust(db_session, member.id, -101, reason="Too much")
        assert exc.value.details == {"balance": 100, "required": 101}

    @pytest.mark.parametrize("amount", [0, 1.5, True, "10"])
    def test_rejects_non_integer_or_zero(self, db_session, ledger, member, amount):
        with pytest.raises(ValidationError):
            ledger.adjust(db_session, member.id, amount, reason="x")

    def test_unknown_type(self, db_session, ledger, member):
        with pytest.raises(ValidationError):
            ledger.adjust(db_session, member.id, 5, transaction_type="BONUS")

    def test_allow_negative_only_for_penalty(self, db_session, ledger, member):
        with pytest.raises(ValidationError, match="Only penalties"):
            ledger.adjust(db_session, member.id, -500, allow_negative=True)

    def test_unknown_user(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            ledger.adjust(db_session, 9999, 10)

    def test_penalty_then_adjustment_on_negative_balance(self, db_session, ledger, user_factory):
        user = user_factory("carl@example.org", credits=20)

        penalty = ledger.adjust(
            db_session, user.id, -50, reason="Broken lens", transaction_type="PENALTY", allow_negative=True
        )
        db_session.commit()
        assert penalty.transaction.balance_after == -30
        assert penalty.transaction.type == "PENALTY"

        with pytest.raises(ValidationError, match="Insufficient credits"):
            ledger.adjust(db_session, user.id, -5, reason="Fee")
        db_session.rollback()

        again = ledger.adjust(
            db_session, user.id, -5, reason="Late", transaction_type="PENALTY", allow_negative=True
        )
        db_session.commit()
        assert again.transaction.balance_after == -35
        assert ledger.verify_user(db_session, user.id)["consistent"] is True

    def test_balance_matches_history_after_mixed_sequence(self, db_session, ledger, member):
        for amount in (25, -40, 10, -200, -95):
            try:
                ledger.adjust(db_session, member.id, amount, reason="sequence")
                db_session.commit()
            except ValidationError:
                db_session.rollback()

        user = db_session.get(User, member.id)
        assert user.credit_balance >= 0
        assert user.credit_balance == ledger_sum(db_session, member.id)
        assert ledger.verify_all(db_session) == []


class TestAdjustCredits:
    def test_audited_and_notified(self, db_session, ledger, audit, notifier, member, admin):
        entry = ledger.adjust_credits(db_session, member.id, 15, reason="  Welcome bonus ", performed_by=admin.id)

        assert entry.transaction.balance_after == 115
        assert entry.transaction.reason == "Welcome bonus"
        assert audit.actions() == [AUDIT_CREDIT_ADJUST]
        assert audit.entries[0]["metadata"]["balance_after"] == 115
        assert notifier.types() == ["CREDIT_ADDED"]

    def test_removal_notifies_credit_removed(self, db_session, ledger, notifier, member):
        ledger.adjust_credits(db_session, member.id, -10, reason="Lost strap")
        assert notifier.types() == ["CREDIT_REMOVED"]

    def test_reason_required(self, db_session, ledger, member):
        with pytest.raises(ValidationError):
            ledger.adjust_credits(db_session, member.id, 10, reason="   ")

    def test_failure_rolls_back(self, db_session, ledger, audit, member):
        with pytest.raises(ValidationError):
            ledger.adjust_credits(db_session, member.id, -1000, reason="Too much")

        assert db_session.get(User, member.id).credit_balance == 100
        assert ledger_sum(db_session, member.id) == 100
        assert audit.entries == []


class TestReadSide:
    def test_list_transactions_newest_first(self, db_session, ledger, member):
        ledger.adjust(db_session, member.id, 5, reason="second")
        db_session.commit()

        result = ledger.list_transactions(db_session, member.id, page=1, limit=10)

        assert result["total"] == 2
        assert [t["reason"] for t in result["items"]] == ["second", "Initial credits"]

    def test_verify_all_reports_drift(self, db_session, ledger, member):
        user = db_session.get(User, member.id)
        user.credit_balance = 999
        db_session.commit()

        mismatches = ledger.verify_all(db_session)

        assert mismatches == [{
            "user_id": member.id,
            "credit_balance": 999,
            "ledger_sum": 100,
            "consistent": False,
        }]
