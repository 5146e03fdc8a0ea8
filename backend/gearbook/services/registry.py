# Overview: Wires the lifecycle services together once per app and exposes them to routes and CLI.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .audit_service import AuditLogSink
from .availability_service import AvailabilityService
from .extension_service import ExtensionEngine
from .ledger_service import CreditLedger
from .movement_service import MovementRecorder
from .notification_service import NotificationSink
from .permission_service import PermissionChecker
from .qr_service import QRCodec
from .reservation_service import ReservationService
from .section_service import SectionService
from .storage_service import S3BlobStore

EXTENSION_KEY = "gearbook"


@dataclass
class Services:
    availability: AvailabilityService
    ledger: CreditLedger
    movements: MovementRecorder
    reservations: ReservationService
    extensions: ExtensionEngine
    sections: SectionService
    qr: QRCodec
    audit: AuditLogSink
    notifier: NotificationSink
    permissions: PermissionChecker
    blobs: S3BlobStore


def build_services(config) -> Services:
    audit = AuditLogSink()
    notifier = NotificationSink()
    availability = AvailabilityService()
    ledger = CreditLedger(audit=audit, notifier=notifier)
    movements = MovementRecorder(max_photos=int(config["MAX_MOVEMENT_PHOTOS"]))
    qr = QRCodec(config["QR_CODE_SECRET"])

    return Services(
        availability=availability,
        ledger=ledger,
        movements=movements,
        reservations=ReservationService(
            availability,
            ledger,
            movements,
            audit=audit,
            notifier=notifier,
            qr_codec=qr,
            default_refund_deadline_hours=int(config["DEFAULT_REFUND_DEADLINE_HOURS"]),
        ),
        extensions=ExtensionEngine(availability, ledger, audit=audit, notifier=notifier),
        sections=SectionService(audit=audit),
        qr=qr,
        audit=audit,
        notifier=notifier,
        permissions=PermissionChecker(),
        blobs=S3BlobStore(
            config["S3_BUCKET"],
            endpoint_url=config.get("S3_ENDPOINT_URL"),
            region_name=config.get("S3_REGION"),
            access_key_id=config.get("S3_ACCESS_KEY_ID"),
            secret_access_key=config.get("S3_SECRET_ACCESS_KEY"),
            ttl_seconds=int(config["BLOB_SIGNED_URL_TTL_SECONDS"]),
        ),
    )


def init_app(app) -> None:
    app.extensions[EXTENSION_KEY] = build_services(app.config)


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
