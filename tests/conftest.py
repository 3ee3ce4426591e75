# tests/conftest.py
import os
import tempfile
from datetime import date, timedelta
from pathlib import Path

# The application reads its settings at import time, so point it at a throwaway
# SQLite file and inline side effects before anything from physio_backend loads.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="physio-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["TASK_QUEUE"] = "inline"
os.environ["TASK_RETRY_BACKOFF"] = "0"
os.environ["TASK_MAX_TRIES"] = "3"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("PLATFORM_COMMISSION", None)
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient

from physio_backend import tasks
from physio_backend.database import Base, SessionLocal, engine
from physio_backend.main import app
from physio_backend.models import Appointment, User
from physio_backend.payment_service import RefundResult
from physio_backend.security_utils import create_access_token, hash_password

DEFAULT_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def fresh_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class RecordingDispatcher:
    """Stands in for TaskDispatcher in service tests and keeps what was scheduled"""

    def __init__(self):
        self.emails: list[tuple[str, str, dict]] = []
        self.refunds: list[int] = []

    def send_email(self, template, to, data):
        self.emails.append((getattr(template, "value", template), to, data))

    def refund(self, appointment_id):
        self.refunds.append(appointment_id)

    def templates(self) -> list[str]:
        return [template for template, _, _ in self.emails]


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role="patient", verification_status="verified", **overrides) -> User:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "name": f"{role.title()} {n}",
            "email": f"{role}{n}@example.com",
            "password_hash": hash_password(DEFAULT_PASSWORD),
            "phone": f"98765432{n:02d}",
            "role": role,
            "is_active": True,
            "is_email_verified": True,
            "verification_status": verification_status,
        }
        if role == "physiotherapist":
            fields.update(specialization="Sports injuries", experience=5, license_number=f"LIC-{n}")
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def patient(make_user):
    return make_user("patient")


@pytest.fixture
def physio(make_user):
    return make_user("physiotherapist")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_appointment(db):
    """Insert an appointment row directly in a given status"""
    counter = {"n": 0}

    def _make_appointment(patient, physio, status="pending", **overrides) -> Appointment:
        counter["n"] += 1
        fields = {
            "patient_id": patient.id,
            "physiotherapist_id": physio.id,
            "appointment_date": date.today() + timedelta(days=counter["n"]),
            "start_time": "10:00",
            "end_time": "11:00",
            "reason": "Lower back pain after lifting",
            "status": status,
            "amount_total": 1000.0,
            "platform_fee": 200.0,
            "physiotherapist_amount": 800.0,
            "payment_id": f"pay_{counter['n']}",
            "payment_status": "paid",
        }
        fields.update(overrides)
        appointment = Appointment(**fields)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def outbox(monkeypatch):
    """Captures every notification email sent by background tasks"""
    sent: list[tuple[str, str, dict]] = []

    async def fake_send(to, template, data):
        sent.append((template, to, data))
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(tasks, "send_templated_email", fake_send)
    return sent


class FakePaymentService:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls: list[int] = []

    async def process_refund(self, appointment):
        self.calls.append(appointment.id)
        if self.error:
            raise self.error
        return self.result or RefundResult(
            refund_id=f"ref_{appointment.id}", status="processed", amount=appointment.amount_total
        )


@pytest.fixture
def payments(monkeypatch):
    service = FakePaymentService()
    monkeypatch.setattr(tasks, "get_payment_service", lambda: service)
    return service


@pytest.fixture
def auth():
    return auth_headers
