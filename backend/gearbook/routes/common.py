# Overview: Helpers shared by the API blueprints (error bodies, pagination, serialization).

from flask import jsonify, request

from ..services.registry import get_services
from ..validation import GearbookError, ValidationError


def error_response(exc: GearbookError):
    return jsonify(exc.to_dict()), exc.status_code


def page_args(default_limit: int = 20) -> tuple[int, int]:
    try:
        page = int(request.args.get("page", 1))
        limit = int(request.args.get("limit", default_limit))
    except ValueError:
        raise ValidationError("page and limit must be integers")
    return page, limit


def int_arg(name: str) -> int | None:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def serialize_reservation(reservation) -> dict:
    return reservation.to_dict(qr_code=get_services().reservations.qr_code_for(reservation))


def serialize_movement(movement) -> dict:
    return movement.to_dict(url_for_key=get_services().blobs.get_signed_url)


def serialize_outcome(outcome) -> dict:
    services = get_services()
    return outcome.to_dict(
        qr_code=services.reservations.qr_code_for(outcome.reservation),
        url_for_key=services.blobs.get_signed_url,
    )
