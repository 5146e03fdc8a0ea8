"""QR payload codec tests."""

import pytest

from gearbook.services.qr_service import QRCodec
from gearbook.validation import InvalidQRCodeError


class TestQRCodec:
    def test_payload_format(self):
        payload = QRCodec("secret").generate(42, 7)
        prefix, reservation_id, user_id, signature = payload.split(".")
        assert (prefix, reservation_id, user_id) == ("R", "42", "7")
        assert len(signature) == 20

    def test_verify(self):
        codec = QRCodec("secret")
        assert codec.verify(codec.generate(42, 7)) == (42, 7)
        assert codec.verify("  " + codec.generate(42, 7) + "\n") == (42, 7)

    def test_other_secret_rejected(self):
        payload = QRCodec("secret").generate(42, 7)
        with pytest.raises(InvalidQRCodeError, match="signature"):
            QRCodec("rotated").verify(payload)

    def test_tampered_ids_rejected(self):
        codec = QRCodec("secret")
        _, _, _, signature = codec.generate(42, 7).split(".")
        with pytest.raises(InvalidQRCodeError):
            codec.verify(f"R.43.7.{signature}")

    @pytest.mark.parametrize(
        "payload",
        ["", "R.1.2", "X.1.2.abc", "R.one.2.abc", "R.1.2.abc.extra", "R.-1.2.abc", None, 12],
    )
    def test_malformed(self, payload):
        with pytest.raises(InvalidQRCodeError):
            QRCodec("secret").verify(payload)

    def test_empty_secret(self):
        with pytest.raises(ValueError):
            QRCodec("")
