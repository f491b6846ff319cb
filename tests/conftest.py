import re

import pytest
from fastapi.testclient import TestClient

from main import app
from utils.brevo_email import get_mailer
from utils.errors import DeliveryError
from utils.otp_service import MemoryOtpStore, OtpLedger, get_otp_ledger
from utils.rate_limit import login_limiter, otp_limiter
from utils.security import AdminPrincipal, get_admin_principal, hash_password
from utils.user_store import MemoryUserStore, get_user_store

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-secret"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Outbox:
    """Records mail instead of sending it. Set `fail` to simulate a provider outage."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def __call__(self, *, to_email, subject, html, text=None):
        if self.fail:
            raise DeliveryError("provider down")
        self.messages.append({"to": to_email, "subject": subject, "html": html, "text": text})

    def last_code(self, email):
        for msg in reversed(self.messages):
            if msg["to"] == email:
                return re.search(r"\b(\d{6})\b", msg["text"]).group(1)
        return None


@pytest.fixture(scope="session")
def admin_principal():
    return AdminPrincipal(email=ADMIN_EMAIL, password_hash=hash_password(ADMIN_PASSWORD))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def user_store():
    return MemoryUserStore()


@pytest.fixture
def ledger(clock):
    return OtpLedger(MemoryOtpStore(), clock=clock)


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def client(user_store, ledger, outbox, admin_principal, monkeypatch):
    # Flow tests register several users from one address; test_rate_limit.py restores the real caps.
    monkeypatch.setattr(otp_limiter, "max_requests", 1000)
    monkeypatch.setattr(login_limiter, "max_requests", 1000)
    app.dependency_overrides[get_user_store] = lambda: user_store
    app.dependency_overrides[get_otp_ledger] = lambda: ledger
    app.dependency_overrides[get_mailer] = lambda: outbox
    app.dependency_overrides[get_admin_principal] = lambda: admin_principal
    otp_limiter.reset()
    login_limiter.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        otp_limiter.reset()
        login_limiter.reset()


@pytest.fixture
def register(client, outbox):
    """Run the full send-otp / verify-otp flow and return the stored user."""

    def _register(email="a@b.com", password="pw12345678"):
        res = client.post("/send-otp", json={"email": email})
        assert res.status_code == 200, res.text
        res = client.post(
            "/verify-otp",
            json={"email": email, "password": password, "otp": outbox.last_code(email)},
        )
        assert res.status_code == 200, res.text
        return res

    return _register


@pytest.fixture
def admin_headers(client):
    res = client.post("/admin-login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}
