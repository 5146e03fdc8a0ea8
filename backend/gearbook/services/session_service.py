# Overview: Service-layer operations for session tokens; resolves the caller of the HTTP layer.

"""
Session Token Management

WHY: The API authenticates every request with a bearer token. Tokens are
issued out of band (CLI) and only their hash is stored.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_TOKEN_TTL_HOURS, default 24h)
- Revocable
- Tokens of non-ACTIVE users are rejected
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..models import SessionToken, User
from ..models.auth import USER_STATUS_ACTIVE
from ..time_utils import utcnow
from ..validation import NotFoundError


DEFAULT_TOKEN_TTL_HOURS = 24


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not a password hash: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _ttl() -> timedelta:
    hours = current_app.config.get("SESSION_TOKEN_TTL_HOURS", DEFAULT_TOKEN_TTL_HOURS)
    return timedelta(hours=int(hours))


def create_session(session, user_id: int, *, ttl: timedelta | None = None) -> tuple[SessionToken, str]:
    """
    Create a new token for a user.

    Returns (session_record, plaintext_token).
    """
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})

    plaintext_token = generate_token()
    now = utcnow()
    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + (ttl or _ttl()),
        is_revoked=False,
    )
    session.add(record)
    session.commit()
    return record, plaintext_token


def validate_session(session, token: str) -> SessionContext | None:
    """
    Return the SessionContext for a valid token, None otherwise.

    Returns None if the token is unknown, expired or revoked, or if the
    user is no longer ACTIVE. Updates last_used_at on success.
    """
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not record:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None

    user = record.user
    if not user or user.status != USER_STATUS_ACTIVE:
        return None

    record.last_used_at = now
    session.commit()
    return SessionContext(user=user, session=record)


def revoke_session(session, token: str) -> bool:
    """Returns True if a live token was revoked."""
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not record:
        return False

    record.is_revoked = True
    session.commit()
    return True
