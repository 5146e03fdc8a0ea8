from __future__ import annotations

from ..extensions import db
from gearbook.time_utils import to_utc_z


CREDIT_TX_ADJUSTMENT = "ADJUSTMENT"
CREDIT_TX_RESERVATION_CHARGE = "RESERVATION_CHARGE"
CREDIT_TX_REFUND = "REFUND"
CREDIT_TX_PENALTY = "PENALTY"
CREDIT_TX_EXTENSION_CHARGE = "EXTENSION_CHARGE"
CREDIT_TX_TYPES = {
    CREDIT_TX_ADJUSTMENT,
    CREDIT_TX_RESERVATION_CHARGE,
    CREDIT_TX_REFUND,
    CREDIT_TX_PENALTY,
    CREDIT_TX_EXTENSION_CHARGE,
}


class CreditTransaction(db.Model):
    """
    Append-only ledger of credit movements for a user.

    - amount is signed: positive = credit, negative = debit
    - balance_after snapshots User.credit_balance right after this row
    - for every user: credit_balance == sum(amount)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.Index("ix_credit_txns_user_created", "user_id", "created_at"),
        db.CheckConstraint("amount != 0", name="ck_credit_txns_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    reason = db.Column(db.String(500), nullable=True)

    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), nullable=True, index=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("credit_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "type": self.type,
            "reason": self.reason,
            "reservation_id": self.reservation_id,
            "performed_by_user_id": self.performed_by_user_id,
            "metadata": self.metadata_json,
            "created_at": to_utc_z(self.created_at),
        }
