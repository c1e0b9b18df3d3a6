"""
Pytest fixtures for kosbook backend tests.

Provides test database setup, users per role, a property with rooms, a
test client, and a fake Midtrans gateway (httpx.MockTransport).
"""

import json
from datetime import date, timedelta

import httpx
import pytest
from kosbook import create_app
from kosbook.extensions import db
from kosbook.models import Property, Room, User
from kosbook.models.property import DEPOSIT_PERCENTAGE
from kosbook.services import midtrans_client, session_service
from kosbook.services.auth_service import hash_password


SERVER_KEY = "SB-Mid-server-TEST"
CRON_SECRET = "cron-test-secret"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MIDTRANS_SERVER_KEY': SERVER_KEY,
        'MIDTRANS_CLIENT_KEY': 'SB-Mid-client-TEST',
        'MIDTRANS_IS_PRODUCTION': False,
        'CRON_SECRET': CRON_SECRET,
        'BOOKING_UNPAID_GRACE_MINUTES': '30',
        'APP_BASE_URL': 'http://localhost:3000',
    })

    with app.app_context():
        db.create_all()
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
# FAKE MIDTRANS
# =============================================================================


class FakeMidtrans:
    """
    Stand-in for the Midtrans Snap and Core APIs.

    transactions maps order_id -> status payload returned by GET /v2/<id>/status;
    snap_status forces the Snap endpoint to answer with that HTTP status.
    """

    def __init__(self):
        self.requests = []
        self.transactions = {}
        self.snap_status = 201

    def settle(self, order_id, gross_amount, transaction_status="settlement", **extra):
        payload = {
            "status_code": "200",
            "order_id": order_id,
            "transaction_id": f"trx-{order_id}",
            "transaction_status": transaction_status,
            "gross_amount": f"{gross_amount}.00",
            "payment_type": "bank_transfer",
            "transaction_time": "2026-10-18 10:00:00",
            "fraud_status": "accept",
        }
        payload.update(extra)
        self.transactions[order_id] = payload

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/snap/v1/transactions":
            if self.snap_status >= 400:
                return httpx.Response(self.snap_status, json={"error_messages": ["gateway down"]})
            body = json.loads(request.content)
            order_id = body["transaction_details"]["order_id"]
            return httpx.Response(201, json={
                "token": f"snap-{order_id}",
                "redirect_url": f"https://app.sandbox.midtrans.com/snap/v4/redirection/{order_id}",
            })

        if path.startswith("/v2/"):
            order_id = path.split("/")[2]
            if path.endswith("/status"):
                payload = self.transactions.get(order_id)
                if payload is None:
                    return httpx.Response(200, json={
                        "status_code": "404",
                        "status_message": "Transaction doesn't exist.",
                    })
                return httpx.Response(200, json=payload)
            return httpx.Response(200, json={"status_code": "200", "order_id": order_id})

        return httpx.Response(404, json={"status_message": "not found"})


@pytest.fixture(scope='function')
def midtrans(app):
    fake = FakeMidtrans()
    app.config['MIDTRANS_HTTP_TRANSPORT'] = httpx.MockTransport(fake.handler)
    yield fake
    app.config.pop('MIDTRANS_HTTP_TRANSPORT', None)


def signed_notification(order_id, gross_amount, transaction_status="settlement", status_code="200", **extra):
    """Build a webhook payload signed with the test server key."""
    gross = f"{gross_amount}.00"
    payload = {
        "order_id": order_id,
        "transaction_status": transaction_status,
        "status_code": status_code,
        "gross_amount": gross,
        "signature_key": midtrans_client.compute_signature(order_id, status_code, gross, key=SERVER_KEY),
        "payment_type": "bank_transfer",
        "transaction_id": f"trx-{order_id}",
        "transaction_time": "2026-10-18 17:00:00",
        "fraud_status": "accept",
    }
    payload.update(extra)
    return payload


# =============================================================================
# USERS / PROPERTY
# =============================================================================


def _make_user(db_session, email, role, name, owner_id=None):
    user = User(
        email=email,
        name=name,
        phone="081234567890",
        password_hash=hash_password("Password123!"),
        role=role,
        owner_id=owner_id,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    return _make_user(db_session, "customer@kos.test", "CUSTOMER", "Sari")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return _make_user(db_session, "other@kos.test", "CUSTOMER", "Dewi")


@pytest.fixture(scope='function')
def adminkos(db_session):
    return _make_user(db_session, "owner@kos.test", "ADMINKOS", "Budi")


@pytest.fixture(scope='function')
def other_adminkos(db_session):
    return _make_user(db_session, "owner2@kos.test", "ADMINKOS", "Agus")


@pytest.fixture(scope='function')
def receptionist(db_session, adminkos):
    return _make_user(db_session, "desk@kos.test", "RECEPTIONIST", "Rina", owner_id=adminkos.id)


@pytest.fixture(scope='function')
def superadmin(db_session):
    return _make_user(db_session, "root@kos.test", "SUPERADMIN", "Root")


@pytest.fixture(scope='function')
def kos(db_session, adminkos):
    """Property with two rooms: A1 takes a 30% deposit, A2 takes no deposit."""
    prop = Property(owner_id=adminkos.id, name="Kos Melati", address="Jl. Melati 5",
                    total_rooms=2, available_rooms=2)
    db_session.add(prop)
    db_session.flush()
    db_session.add_all([
        Room(property_id=prop.id, room_number="A1", room_type="Standard",
             monthly_price=1_500_000, daily_price=150_000,
             deposit_required=True, deposit_type=DEPOSIT_PERCENTAGE, deposit_value=30),
        Room(property_id=prop.id, room_number="A2", room_type="Deluxe",
             monthly_price=2_000_000),
    ])
    db_session.commit()
    return prop


@pytest.fixture(scope='function')
def room(db_session, kos):
    return db_session.query(Room).filter_by(property_id=kos.id, room_number="A1").one()


@pytest.fixture(scope='function')
def room_no_deposit(db_session, kos):
    return db_session.query(Room).filter_by(property_id=kos.id, room_number="A2").one()


@pytest.fixture(scope='function')
def check_in():
    return date.today() + timedelta(days=7)


def auth_headers(user) -> dict:
    """Open a session for the user and return Authorization headers."""
    _, token = session_service.create_session(user_id=user.id)
    return {'Authorization': f'Bearer {token}'}


def cron_headers() -> dict:
    return {'Authorization': f'Bearer {CRON_SECRET}'}
