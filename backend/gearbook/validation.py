from __future__ import annotations

import re
from datetime import date
from typing import Any, Iterable

from gearbook.time_utils import parse_iso_date


TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class GearbookError(Exception):
    """
    Base class for domain errors raised by the service layer.

    Every error carries a stable machine `code` and the HTTP status the
    API layer answers with. `details` holds structured context for the
    client (conflicting reservations, current balance, ...).
    """
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(GearbookError):
    """404-level: referenced product/reservation/section/user does not exist."""
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(GearbookError):
    """400-level input or business rule problem."""
    code = "VALIDATION_ERROR"
    status_code = 400


class ForbiddenError(GearbookError):
    """403-level: the target entity does not allow this operation."""
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(GearbookError):
    """409-level: availability or status race lost to a concurrent writer."""
    code = "CONFLICT"
    status_code = 409


class InvalidQRCodeError(GearbookError):
    code = "INVALID_QR_CODE"
    status_code = 400


# =============================================================================
# Request payload coercion (used by the routes)
# =============================================================================

def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(payload: dict, key: str, *, required: bool = False, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion: rejects floats, booleans, decimals and
    scientific notation so "1e3" never becomes a credit amount.
    """
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    else:
        raise ValidationError(f"{key} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return result


def coerce_date(payload: dict, key: str, *, required: bool = False) -> date | None:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 date")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date")


def coerce_time(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not TIME_RE.match(value):
        raise ValidationError(f"{key} must use the HH:MM format")
    return value


def coerce_str(payload: dict, key: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = str(value).strip()
    if required and not value:
        raise ValidationError(f"{key} cannot be blank")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def coerce_choice(payload: dict, key: str, choices: Iterable[str], *, default: str | None = None) -> str | None:
    value = payload.get(key, default)
    if value is None:
        return None
    allowed = set(choices)
    if value not in allowed:
        raise ValidationError(f"{key} must be one of: {', '.join(sorted(allowed))}")
    return value


def coerce_photos(payload: dict, key: str = "photos") -> list[dict]:
    """Photo references previously returned by the upload endpoint."""
    raw = payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list")

    photos = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"{key}[{index}] must be an object")
        photos.append({
            "key": coerce_str(item, "key", required=True, max_length=512),
            "filename": coerce_str(item, "filename", required=True, max_length=255),
            "mime_type": coerce_str(item, "mime_type", required=True, max_length=128),
            "size": coerce_int(item, "size", required=True, minimum=0),
        })
    return photos
