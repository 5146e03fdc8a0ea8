# Overview: Service-layer operations for the credit ledger; the only writer of User.credit_balance.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ..models import CreditTransaction, User
from ..models.communications import NOTIFICATION_CREDIT_ADDED, NOTIFICATION_CREDIT_REMOVED
from ..models.credits import CREDIT_TX_ADJUSTMENT, CREDIT_TX_PENALTY, CREDIT_TX_TYPES
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .concurrency import atomic, lock_for_update
from .side_effects import best_effort
"""
Credit Ledger Invariants (authoritative)

- credit_transactions is append-only; rows are never updated or deleted.
- User.credit_balance == sum(credit_transactions.amount) for that user.
- Balance and transaction row are written in the same unit of work.
- A balance never goes below zero, except through an explicit
  allow-negative PENALTY.
- Concurrent writes for one user are serialized by the user row's
  version_id (and FOR UPDATE where the database honors it).
"""

AUDIT_CREDIT_ADJUST = "CREDIT_ADJUST"


@dataclass
class LedgerEntry:
    user: User
    transaction: CreditTransaction


class CreditLedger:
    """
    Atomic balance adjustments with an append-only history.

    adjust() participates in the caller's unit of work and does not
    commit. adjust_credits() is the standalone administrative operation:
    it owns its transaction and emits audit/notification afterwards.
    """

    def __init__(self, audit=None, notifier=None):
        self.audit = audit
        self.notifier = notifier

    def _load_user(self, session, user_id: int) -> User:
        user = lock_for_update(session.query(User).filter(User.id == user_id)).first()
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return user

    def adjust(
        self,
        session,
        user_id: int,
        amount: int,
        *,
        reason: str | None = None,
        performed_by: int | None = None,
        transaction_type: str = CREDIT_TX_ADJUSTMENT,
        reservation_id: int | None = None,
        metadata: dict | None = None,
        allow_negative: bool = False,
    ) -> LedgerEntry:
        """
        Apply a signed amount to a user's balance and append the transaction.

        allow_negative is only honored for PENALTY transactions; every other
        type leaving the balance below zero raises ValidationError.
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("amount must be an integer")
        if amount == 0:
            raise ValidationError("amount cannot be zero")
        if transaction_type not in CREDIT_TX_TYPES:
            raise ValidationError(f"Unknown transaction type '{transaction_type}'")
        if allow_negative and transaction_type != CREDIT_TX_PENALTY:
            raise ValidationError("Only penalties may leave a negative balance")

        user = self._load_user(session, user_id)
        new_balance = user.credit_balance + amount

        if new_balance < 0 and not allow_negative:
            raise ValidationError(
                "Insufficient credits",
                details={"balance": user.credit_balance, "required": -amount},
            )

        user.credit_balance = new_balance
        tx = CreditTransaction(
            user_id=user.id,
            amount=amount,
            balance_after=new_balance,
            type=transaction_type,
            reason=reason,
            reservation_id=reservation_id,
            performed_by_user_id=performed_by,
            metadata_json=metadata,
            created_at=utcnow(),
        )
        session.add(tx)
        session.flush()
        return LedgerEntry(user=user, transaction=tx)

    def adjust_credits(
        self,
        session,
        user_id: int,
        amount: int,
        *,
        reason: str,
        performed_by: int | None = None,
    ) -> LedgerEntry:
        """Administrative ADJUSTMENT in its own transaction, audited and notified."""
        if not reason or not reason.strip():
            raise ValidationError("reason is required")

        with atomic(session):
            entry = self.adjust(
                session,
                user_id,
                amount,
                reason=reason.strip(),
                performed_by=performed_by,
                transaction_type=CREDIT_TX_ADJUSTMENT,
            )

        if self.audit is not None:
            best_effort(
                "audit credit adjust",
                self.audit.log,
                session,
                performed_by=performed_by,
                action=AUDIT_CREDIT_ADJUST,
                target_type="User",
                target_id=user_id,
                user_id=user_id,
                metadata={
                    "amount": amount,
                    "balance_after": entry.transaction.balance_after,
                    "reason": entry.transaction.reason,
                    "transaction_id": entry.transaction.id,
                },
            )
        if self.notifier is not None:
            added = amount > 0
            best_effort(
                "notify credit adjust",
                self.notifier.notify,
                session,
                user_id=user_id,
                type=NOTIFICATION_CREDIT_ADDED if added else NOTIFICATION_CREDIT_REMOVED,
                title="Credits added" if added else "Credits removed",
                message=(
                    f"{abs(amount)} credit(s) {'added to' if added else 'removed from'} your account. "
                    f"New balance: {entry.transaction.balance_after}."
                ),
                metadata={"amount": amount, "reason": entry.transaction.reason},
            )
        return entry

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_balance(self, session, user_id: int) -> int:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return user.credit_balance

    def list_transactions(self, session, user_id: int, *, page: int = 1, limit: int = 20) -> dict:
        if session.get(User, user_id) is None:
            raise NotFoundError("User not found", details={"user_id": user_id})
        page = max(page or 1, 1)
        limit = min(max(limit or 20, 1), 100)

        query = session.query(CreditTransaction).filter(CreditTransaction.user_id == user_id)
        total = query.count()
        rows = (
            query.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "items": [t.to_dict() for t in rows],
            "page": page,
            "limit": limit,
            "total": total,
        }

    def verify_user(self, session, user_id: int) -> dict:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        ledger_sum = (
            session.query(func.coalesce(func.sum(CreditTransaction.amount), 0))
            .filter(CreditTransaction.user_id == user_id)
            .scalar()
        )
        return {
            "user_id": user.id,
            "credit_balance": user.credit_balance,
            "ledger_sum": int(ledger_sum),
            "consistent": int(ledger_sum) == user.credit_balance,
        }

    def verify_all(self, session) -> list[dict]:
        """Users whose balance diverges from the sum of their transactions."""
        sums = dict(
            session.query(CreditTransaction.user_id, func.sum(CreditTransaction.amount))
            .group_by(CreditTransaction.user_id)
            .all()
        )
        mismatches = []
        for user in session.query(User).order_by(User.id.asc()).all():
            ledger_sum = int(sums.get(user.id) or 0)
            if ledger_sum != user.credit_balance:
                mismatches.append({
                    "user_id": user.id,
                    "credit_balance": user.credit_balance,
                    "ledger_sum": ledger_sum,
                    "consistent": False,
                })
        return mismatches
