from __future__ import annotations

from ..extensions import db
from gearbook.time_utils import to_utc_z


USER_STATUS_ACTIVE = "ACTIVE"
USER_STATUS_INACTIVE = "INACTIVE"
USER_STATUS_SUSPENDED = "SUSPENDED"


class User(db.Model):
    """
    Member account: identity, role and credit balance.

    credit_balance is a denormalized running total of the user's
    CreditTransaction rows. It is only written by the credit ledger
    service, always together with a new transaction row.

    version_id guards the balance against lost updates: two concurrent
    ledger writes for the same user cannot both commit.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(128), nullable=False, default="")
    last_name = db.Column(db.String(128), nullable=False, default="")

    status = db.Column(db.String(16), nullable=False, default=USER_STATUS_ACTIVE, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True, index=True)

    credit_balance = db.Column(db.Integer, nullable=False, default=0)

    in_app_notifications = db.Column(db.Boolean, nullable=False, default=True)
    email_notifications = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    role = db.relationship("Role", backref=db.backref("users", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "status": self.status,
            "role": self.role.name if self.role else None,
            "credit_balance": self.credit_balance,
            "in_app_notifications": self.in_app_notifications,
            "email_notifications": self.email_notifications,
            "created_at": to_utc_z(self.created_at),
        }


class Role(db.Model):
    """
    Named bundle of permission grants (e.g. "admin", "member").

    Users hold a single role. Grants live in RolePermission so they can be
    scoped to a section.
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_roles_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "permissions": sorted({p.permission_key for p in self.permissions}),
        }


class RolePermission(db.Model):
    """
    Permission grant for a role.

    section_id NULL means the grant applies to every section; otherwise it
    only applies to products of that section.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_key", "section_id", name="uq_role_permission_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)
    permission_key = db.Column(db.String(64), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey("sections.id"), nullable=True, index=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    role = db.relationship("Role", backref=db.backref("permissions", lazy=True, cascade="all, delete-orphan"))


class SessionToken(db.Model):
    """
    Bearer token used by the HTTP layer to resolve the caller.

    Only the SHA-256 hash of the token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
