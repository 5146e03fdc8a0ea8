# Overview: Idempotent bootstrap of roles, the default section and user accounts.

from __future__ import annotations

from ..models import Role, RolePermission, Section, User
from ..models.catalog import ALL_WEEKDAYS
from ..models.credits import CREDIT_TX_ADJUSTMENT
from ..permissions import DEFAULT_ROLE_DESCRIPTIONS, DEFAULT_ROLE_PERMISSIONS
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import atomic

DEFAULT_SECTION_NAME = "General"
SYSTEM_SECTION_NAME = "Unassigned"


def ensure_default_roles(session) -> int:
    """
    Create the default roles and any missing grants.

    Safe to call repeatedly. Returns the number of grants added.
    """
    added = 0
    with atomic(session):
        for name, codes in DEFAULT_ROLE_PERMISSIONS.items():
            role = session.query(Role).filter_by(name=name).first()
            if role is None:
                role = Role(name=name, description=DEFAULT_ROLE_DESCRIPTIONS.get(name))
                session.add(role)
                session.flush()

            existing = {p.permission_key for p in role.permissions if p.section_id is None}
            for code in codes:
                if code not in existing:
                    session.add(RolePermission(role_id=role.id, permission_key=code))
                    added += 1
    return added


def ensure_default_sections(session) -> tuple[Section, Section]:
    """
    The system section holds products not yet filed anywhere and cannot be
    modified or closed; the default section is an ordinary one.
    """
    with atomic(session):
        system = session.query(Section).filter_by(name=SYSTEM_SECTION_NAME).first()
        if system is None:
            system = Section(
                name=SYSTEM_SECTION_NAME,
                description="Products not assigned to a section",
                is_system=True,
                allowed_days_in=list(ALL_WEEKDAYS),
                allowed_days_out=list(ALL_WEEKDAYS),
            )
            session.add(system)

        default = session.query(Section).filter_by(name=DEFAULT_SECTION_NAME).first()
        if default is None:
            default = Section(
                name=DEFAULT_SECTION_NAME,
                allowed_days_in=list(ALL_WEEKDAYS),
                allowed_days_out=list(ALL_WEEKDAYS),
            )
            session.add(default)
    return system, default


def create_user(
    session,
    ledger,
    *,
    email: str,
    first_name: str = "",
    last_name: str = "",
    role_name: str | None = None,
    initial_credits: int = 0,
    performed_by: int | None = None,
) -> User:
    """
    Create an account. Initial credits go through the ledger so the
    balance always matches the transaction history.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if initial_credits < 0:
        raise ValidationError("initial_credits cannot be negative")

    with atomic(session):
        if session.query(User).filter_by(email=email).first():
            raise ConflictError(f"User '{email}' already exists")

        role = None
        if role_name:
            role = session.query(Role).filter_by(name=role_name).first()
            if role is None:
                raise NotFoundError(f"Role '{role_name}' not found")

        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role_id=role.id if role else None,
            credit_balance=0,
        )
        session.add(user)
        session.flush()

        if initial_credits:
            ledger.adjust(
                session,
                user.id,
                initial_credits,
                reason="Initial credits",
                performed_by=performed_by,
                transaction_type=CREDIT_TX_ADJUSTMENT,
            )
    return user
