# Overview: Signed payload codec for reservation QR codes (payload only, no image rendering).

from __future__ import annotations

import hashlib
import hmac

from ..validation import InvalidQRCodeError

QR_PREFIX = "R"
SIGNATURE_LENGTH = 20


class QRCodec:
    """
    Payload format: R.<reservation_id>.<user_id>.<sig>

    sig is the first 20 hex characters of
    HMAC-SHA256(secret, "R:<reservation_id>:<user_id>").
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("QR code secret must not be empty")
        self._secret = secret.encode("utf-8")

    def _sign(self, reservation_id: int, user_id: int) -> str:
        message = f"{QR_PREFIX}:{reservation_id}:{user_id}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()[:SIGNATURE_LENGTH]

    def generate(self, reservation_id: int, user_id: int) -> str:
        return f"{QR_PREFIX}.{reservation_id}.{user_id}.{self._sign(reservation_id, user_id)}"

    def verify(self, payload: str) -> tuple[int, int]:
        """Return (reservation_id, user_id) or raise InvalidQRCodeError."""
        if not isinstance(payload, str):
            raise InvalidQRCodeError("Invalid QR code format")
        parts = payload.strip().split(".")
        if len(parts) != 4 or parts[0] != QR_PREFIX:
            raise InvalidQRCodeError("Invalid QR code format")

        _, raw_reservation, raw_user, signature = parts
        if not raw_reservation.isdigit() or not raw_user.isdigit():
            raise InvalidQRCodeError("Invalid QR code format")
        reservation_id, user_id = int(raw_reservation), int(raw_user)

        expected = self._sign(reservation_id, user_id)
        if not hmac.compare_digest(expected, signature):
            raise InvalidQRCodeError("Invalid QR code signature")
        return reservation_id, user_id
