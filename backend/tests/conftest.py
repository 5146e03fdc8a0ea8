"""
Pytest fixtures for gearbook backend tests.

Provides the app on an in-memory database, a fresh session per test,
catalog/user fixtures, and service objects running on a fixed clock.
"""

from datetime import datetime

import pytest
from moto import mock_aws

from gearbook import create_app
from gearbook.extensions import db
from gearbook.models import Product, Role, Section, User
from gearbook.models.catalog import ALL_WEEKDAYS
from gearbook.permissions import ROLE_ADMIN, ROLE_MEMBER
from gearbook.services import bootstrap_service, session_service
from gearbook.services.audit_service import AuditLogSink
from gearbook.services.availability_service import AvailabilityService
from gearbook.services.extension_service import ExtensionEngine
from gearbook.services.ledger_service import CreditLedger
from gearbook.services.movement_service import MovementRecorder
from gearbook.services.notification_service import NotificationSink
from gearbook.services.qr_service import QRCodec
from gearbook.services.reservation_service import ReservationService
from gearbook.services.registry import get_services
from gearbook.services.section_service import SectionService

# Monday 2 March 2026, 10:00 UTC
NOW = datetime(2026, 3, 2, 10, 0)
QR_SECRET = "test-qr-secret"
BLOB_BUCKET = "gearbook-test"


def fixed_clock():
    return NOW


@pytest.fixture(scope='session')
def aws():
    """In-memory S3 for the whole run; buckets are created by the fixtures that need them."""
    with mock_aws():
        yield


@pytest.fixture(scope='session')
def app(aws):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SECRET_KEY': 'test-secret',
        'QR_CODE_SECRET': QR_SECRET,
        'S3_BUCKET': BLOB_BUCKET,
        'S3_REGION': 'us-east-1',
        'S3_ACCESS_KEY_ID': 'testing',
        'S3_SECRET_ACCESS_KEY': 'testing',
    })

    with app.app_context():
        db.create_all()
        get_services().blobs.client.create_bucket(Bucket=BLOB_BUCKET)
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# SIDE-EFFECT DOUBLES
# =============================================================================


class RecordingAudit:
    """Audit sink that keeps calls in memory."""

    def __init__(self):
        self.entries = []

    def log(self, session, **kwargs):
        self.entries.append(kwargs)

    def actions(self):
        return [e["action"] for e in self.entries]


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, session, **kwargs):
        self.sent.append(kwargs)

    def types(self):
        return [n["type"] for n in self.sent]


class FailingSink:
    """Raises on every call; lifecycle operations must still succeed."""

    def __init__(self):
        self.calls = 0

    def log(self, session, **kwargs):
        self.calls += 1
        raise RuntimeError("audit store unavailable")

    def notify(self, session, **kwargs):
        self.calls += 1
        raise RuntimeError("notification store unavailable")


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def clock():
    return fixed_clock


# =============================================================================
# SERVICES
# =============================================================================


@pytest.fixture
def availability():
    return AvailabilityService()


@pytest.fixture
def ledger(audit, notifier):
    return CreditLedger(audit=audit, notifier=notifier)


@pytest.fixture
def movements():
    return MovementRecorder(max_photos=3)


@pytest.fixture
def qr_codec():
    return QRCodec(QR_SECRET)


@pytest.fixture
def reservations(availability, ledger, movements, audit, notifier, qr_codec):
    return ReservationService(
        availability,
        ledger,
        movements,
        audit=audit,
        notifier=notifier,
        qr_codec=qr_codec,
        clock=fixed_clock,
    )


@pytest.fixture
def extensions(availability, ledger, audit, notifier):
    return ExtensionEngine(availability, ledger, audit=audit, notifier=notifier, clock=fixed_clock)


@pytest.fixture
def sections_service(audit):
    return SectionService(audit=audit)


@pytest.fixture
def db_audit():
    return AuditLogSink()


@pytest.fixture
def db_notifier():
    return NotificationSink()


# =============================================================================
# CATALOG / ACCOUNTS
# =============================================================================


@pytest.fixture
def setup_roles(db_session):
    """Setup default roles and permissions."""
    bootstrap_service.ensure_default_roles(db_session)


@pytest.fixture
def section(db_session):
    section = Section(
        name="Camera Room",
        allowed_days_in=list(ALL_WEEKDAYS),
        allowed_days_out=list(ALL_WEEKDAYS),
        refund_deadline_hours=48,
    )
    db_session.add(section)
    db_session.commit()
    return section


@pytest.fixture
def product(db_session, section):
    """10 credits per day, 1 to 14 days."""
    product = Product(
        name="Canon EOS R6",
        reference="CAM-001",
        price_per_period=10,
        credit_period="DAY",
        min_duration=1,
        max_duration=14,
        section_id=section.id,
    )
    db_session.add(product)
    db_session.commit()
    return product


def make_user(session, email, *, credits=0, role_name=None, status="ACTIVE"):
    role = session.query(Role).filter_by(name=role_name).first() if role_name else None
    user = User(
        email=email,
        first_name=email.split("@")[0].title(),
        role_id=role.id if role else None,
        credit_balance=0,
        status=status,
    )
    session.add(user)
    session.commit()
    if credits:
        CreditLedger().adjust(session, user.id, credits, reason="Initial credits")
        session.commit()
    return user


@pytest.fixture
def member(db_session, setup_roles):
    """Member with 100 credits."""
    return make_user(db_session, "ann@example.org", credits=100, role_name=ROLE_MEMBER)


@pytest.fixture
def other_member(db_session, setup_roles):
    return make_user(db_session, "bob@example.org", credits=100, role_name=ROLE_MEMBER)


@pytest.fixture
def admin(db_session, setup_roles):
    return make_user(db_session, "admin@example.org", role_name=ROLE_ADMIN)


@pytest.fixture
def user_factory(db_session, setup_roles):
    def factory(email, **kwargs):
        return make_user(db_session, email, **kwargs)
    return factory


# =============================================================================
# HTTP
# =============================================================================


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def member_headers(db_session, member):
    _, token = session_service.create_session(db_session, member.id)
    return auth_headers(token)


@pytest.fixture
def admin_headers(db_session, admin):
    _, token = session_service.create_session(db_session, admin.id)
    return auth_headers(token)
