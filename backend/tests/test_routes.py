"""
HTTP API tests.

Routes run against the app's own service registry (real clock), so the
dates below are relative to today.
"""

import io
from datetime import date, timedelta
from urllib.parse import parse_qs, urlparse

from gearbook.extensions import db
from gearbook.models import User
from gearbook.services import session_service
from gearbook.services.registry import get_services

from conftest import BLOB_BUCKET, auth_headers

PNG = b"\x89PNG\r\n\x1a\nfake"


def iso(days_from_today: int) -> str:
    return (date.today() + timedelta(days=days_from_today)).isoformat()


def book(client, headers, product, start=30, end=32):
    return client.post(
        "/api/reservations/me",
        json={"product_id": product.id, "start_date": iso(start), "end_date": iso(end)},
        headers=headers,
    )


# =============================================================================
# AUTHENTICATION
# =============================================================================


class TestAuthentication:
    def test_missing_token(self, client, db_session):
        response = client.get("/api/reservations/me")
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    def test_unknown_token(self, client, db_session):
        response = client.get("/api/reservations/me", headers=auth_headers("nope"))
        assert response.status_code == 401

    def test_me(self, client, member_headers, member):
        response = client.get("/api/auth/me", headers=member_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["user"]["email"] == member.email
        assert body["permissions"] == []

    def test_logout_revokes_token(self, client, member_headers):
        assert client.post("/api/auth/logout", headers=member_headers).status_code == 200
        assert client.get("/api/auth/me", headers=member_headers).status_code == 401

    def test_member_cannot_use_admin_routes(self, client, member_headers):
        response = client.get("/api/admin/reservations/", headers=member_headers)
        assert response.status_code == 403
        assert response.get_json()["required_permission"] == "VIEW_RESERVATIONS"


# =============================================================================
# SELF-SERVICE
# =============================================================================


class TestSelfService:
    def test_book_and_list(self, client, member_headers, product):
        response = book(client, member_headers, product)

        assert response.status_code == 201
        body = response.get_json()
        assert body["reservation"]["status"] == "CONFIRMED"
        assert body["reservation"]["credits_charged"] == 30
        assert body["reservation"]["qr_code"].startswith(f"R.{body['reservation']['id']}.")
        assert body["transaction"]["amount"] == -30

        listing = client.get("/api/reservations/me", headers=member_headers).get_json()
        assert listing["total"] == 1

        balance = client.get("/api/credits/me", headers=member_headers).get_json()
        assert balance["credit_balance"] == 70

    def test_overlap_is_409(self, client, member_headers, product, db_session, other_member):
        assert book(client, member_headers, product).status_code == 201
        _, token = session_service.create_session(db_session, other_member.id)

        response = book(client, auth_headers(token), product, start=31, end=33)

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "CONFLICT"
        assert len(body["details"]["conflicts"]) == 1

    def test_invalid_payload(self, client, member_headers, product):
        response = client.post(
            "/api/reservations/me",
            json={"product_id": product.id, "start_date": "soon", "end_date": iso(3)},
            headers=member_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_other_members_reservation_is_404(self, client, member_headers, admin_headers, product, other_member):
        created = client.post(
            "/api/admin/reservations/",
            json={
                "user_id": other_member.id,
                "product_id": product.id,
                "start_date": iso(30),
                "end_date": iso(31),
            },
            headers=admin_headers,
        ).get_json()["reservation"]

        response = client.get(f"/api/reservations/me/{created['id']}", headers=member_headers)
        assert response.status_code == 404

    def test_cancel_with_refund(self, client, member_headers, product):
        reservation = book(client, member_headers, product).get_json()["reservation"]

        response = client.post(f"/api/reservations/me/{reservation['id']}/cancel", headers=member_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["reservation"]["status"] == "CANCELLED"
        assert body["transaction"]["amount"] == 30

    def test_extension_check_and_extend(self, client, member_headers, product):
        reservation = book(client, member_headers, product).get_json()["reservation"]

        check = client.get(
            f"/api/reservations/me/{reservation['id']}/extension",
            query_string={"new_end_date": iso(34)},
            headers=member_headers,
        )
        assert check.status_code == 200
        assert check.get_json()["possible"] is True
        assert check.get_json()["additional_cost"] == 20

        extended = client.post(
            f"/api/reservations/me/{reservation['id']}/extend",
            json={"new_end_date": iso(34)},
            headers=member_headers,
        )
        assert extended.status_code == 200
        assert extended.get_json()["reservation"]["end_date"] == iso(34)

    def test_extension_check_requires_date(self, client, member_headers, product):
        reservation = book(client, member_headers, product).get_json()["reservation"]
        response = client.get(f"/api/reservations/me/{reservation['id']}/extension", headers=member_headers)
        assert response.status_code == 400

    def test_availability_endpoints(self, client, member_headers, product):
        book(client, member_headers, product)

        check = client.get(
            f"/api/products/{product.id}/availability/check",
            query_string={"start_date": iso(32), "end_date": iso(35)},
            headers=member_headers,
        ).get_json()
        assert check["available"] is False

        month = (date.today() + timedelta(days=30)).strftime("%Y-%m")
        calendar = client.get(
            f"/api/products/{product.id}/availability",
            query_string={"month": month},
            headers=member_headers,
        )
        assert calendar.status_code == 200

        missing = client.get(f"/api/products/{product.id}/availability", headers=member_headers)
        assert missing.status_code == 400

    def test_notifications(self, client, member_headers, product):
        book(client, member_headers, product)

        items = client.get("/api/notifications/me", headers=member_headers).get_json()["notifications"]
        assert [n["type"] for n in items] == ["RESERVATION_CONFIRMED"]

        read = client.post(f"/api/notifications/me/{items[0]['id']}/read", headers=member_headers)
        assert read.status_code == 200
        unread = client.get(
            "/api/notifications/me", query_string={"unread": "true"}, headers=member_headers
        ).get_json()["notifications"]
        assert unread == []

        pref = client.put(
            "/api/notifications/me/preferences",
            json={"notification_type": "RESERVATION_CONFIRMED", "in_app_enabled": False},
            headers=member_headers,
        )
        assert pref.status_code == 200
        assert pref.get_json()["in_app_enabled"] is False


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================


class TestAdminOperations:
    def test_checkout_and_return_with_photo(self, client, member_headers, admin_headers, product):
        reservation = book(client, member_headers, product).get_json()["reservation"]

        upload = client.post(
            "/api/movements/photos",
            data={"file": (io.BytesIO(PNG), "scratch.png", "image/png")},
            content_type="multipart/form-data",
            headers=admin_headers,
        )
        assert upload.status_code == 201
        photo = upload.get_json()

        checkout = client.post(
            f"/api/admin/reservations/{reservation['id']}/checkout",
            json={"condition": "OK"},
            headers=admin_headers,
        )
        assert checkout.status_code == 200
        assert checkout.get_json()["reservation"]["status"] == "CHECKED_OUT"

        returned = client.post(
            f"/api/admin/reservations/{reservation['id']}/return",
            json={
                "condition": "MINOR_DAMAGE",
                "photos": [{k: photo[k] for k in ("key", "filename", "mime_type", "size")}],
            },
            headers=admin_headers,
        )
        assert returned.status_code == 200
        movement = returned.get_json()["movement"]
        assert movement["condition"] == "MINOR_DAMAGE"

        url = urlparse(movement["photos"][0]["url"])
        assert url.path == f"/{BLOB_BUCKET}/{photo['key']}"
        assert "X-Amz-Signature" in parse_qs(url.query)
        assert get_services().blobs.read(photo["key"]) == PNG

    def test_discard_unattached_photo(self, client, admin_headers):
        upload = client.post(
            "/api/movements/photos",
            data={"file": (io.BytesIO(PNG), "a.png", "image/png")},
            content_type="multipart/form-data",
            headers=admin_headers,
        ).get_json()

        first = client.delete(f"/api/movements/photos/{upload['key']}", headers=admin_headers)
        assert first.status_code == 200
        assert not get_services().blobs.exists(upload["key"])

        again = client.delete(f"/api/movements/photos/{upload['key']}", headers=admin_headers)
        assert again.status_code == 404

        outside = client.delete("/api/movements/photos/other/a.png", headers=admin_headers)
        assert outside.status_code == 400

    def test_upload_rejects_non_images(self, client, admin_headers):
        response = client.post(
            "/api/movements/photos",
            data={"file": (io.BytesIO(b"%PDF"), "a.pdf", "application/pdf")},
            content_type="multipart/form-data",
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_scan_checkout(self, client, member_headers, admin_headers, product):
        reservation = book(client, member_headers, product).get_json()["reservation"]

        resolved = client.post(
            "/api/admin/reservations/scan/resolve",
            json={"qr_code": reservation["qr_code"]},
            headers=admin_headers,
        )
        assert resolved.get_json()["reservation"]["id"] == reservation["id"]

        scanned = client.post(
            "/api/admin/reservations/scan/checkout",
            json={"qr_code": reservation["qr_code"]},
            headers=admin_headers,
        )
        assert scanned.status_code == 200
        assert scanned.get_json()["movement"]["type"] == "CHECKOUT"

    def test_scan_rejects_forged_code(self, client, admin_headers, db_session):
        response = client.post(
            "/api/admin/reservations/scan/resolve",
            json={"qr_code": "R.1.1.00000000000000000000"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_QR_CODE"

    def test_refund_and_penalty(self, client, member_headers, admin_headers, product, member):
        reservation = book(client, member_headers, product).get_json()["reservation"]

        refund = client.post(
            f"/api/admin/reservations/{reservation['id']}/refund",
            json={"amount": 10, "reason": "Late pickup"},
            headers=admin_headers,
        )
        assert refund.status_code == 200
        assert refund.get_json()["reservation"]["refund_amount"] == 10

        penalty = client.post(
            f"/api/admin/reservations/{reservation['id']}/penalty",
            json={"amount": 5},
            headers=admin_headers,
        )
        assert penalty.status_code == 400

        penalty = client.post(
            f"/api/admin/reservations/{reservation['id']}/penalty",
            json={"amount": 5, "reason": "Dirty lens"},
            headers=admin_headers,
        )
        assert penalty.status_code == 200
        assert db.session.get(User, member.id).credit_balance == 75

    def test_admin_listing(self, client, member_headers, admin_headers, product):
        book(client, member_headers, product)
        response = client.get(
            "/api/admin/reservations/", query_string={"status": "CONFIRMED"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.get_json()["total"] == 1

    def test_credit_adjustment_and_verify(self, client, admin_headers, member):
        response = client.post(
            f"/api/admin/credits/{member.id}/adjust",
            json={"amount": -20, "reason": "Lost lens cap"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["credit_balance"] == 80

        too_much = client.post(
            f"/api/admin/credits/{member.id}/adjust",
            json={"amount": -500, "reason": "Oops"},
            headers=admin_headers,
        )
        assert too_much.status_code == 400

        history = client.get(f"/api/admin/credits/{member.id}/transactions", headers=admin_headers).get_json()
        assert history["total"] == 2

        verify = client.get("/api/admin/credits/verify", headers=admin_headers).get_json()
        assert verify["consistent"] is True

    def test_closure_routes(self, client, member_headers, admin_headers, product, section):
        book(client, member_headers, product)

        response = client.post(
            f"/api/sections/{section.id}/closures",
            json={"start_date": iso(32), "end_date": iso(33), "reason": "Inventory"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert len(response.get_json()["affected_reservations"]) == 1

        forbidden = client.post(
            f"/api/sections/{section.id}/closures",
            json={"start_date": iso(40), "end_date": iso(41), "reason": "Nope"},
            headers=member_headers,
        )
        assert forbidden.status_code == 403

        listed = client.get(f"/api/sections/{section.id}/closures", headers=member_headers).get_json()
        assert len(listed["closures"]) == 1

    def test_audit_log(self, client, member_headers, admin_headers, product):
        book(client, member_headers, product)
        response = client.get(
            "/api/admin/audit-logs", query_string={"action": "RESERVATION_CREATE"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.get_json()["total"] == 1


class TestHealth:
    def test_health(self, client, setup_roles):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"
        assert response.get_json()["checks"]["blob_storage"] == {"status": "healthy", "details": {"bucket": BLOB_BUCKET}}
