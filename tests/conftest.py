"""
EduData backend - test configuration and fixtures
"""
from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from config import TestingConfig
from db import db
from models.user import User
from services.auth import build_auth_service
from services.notify import LogChannel, NotificationDispatcher, is_email, is_phone


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, start=None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now += timedelta(**kw)
        return self.now


class RecordingChannel:
    """Delivery channel that keeps codes in memory instead of sending them."""

    def __init__(self, name, accepts=lambda contact: True, fail=False):
        self.name = name
        self.configured = True
        self.fail = fail
        self.sent = []
        self._accepts = accepts

    def accepts(self, contact):
        return self._accepts(contact)

    def send(self, contact, code, expiry_minutes):
        if self.fail:
            raise RuntimeError(f"{self.name} gateway down")
        self.sent.append((contact, code, expiry_minutes))

    @property
    def last_code(self):
        return self.sent[-1][1]

    @property
    def last_contact(self):
        return self.sent[-1][0]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def outbox():
    return {
        "sms": RecordingChannel("sms", accepts=is_phone),
        "email": RecordingChannel("email", accepts=is_email),
    }


def _make_app(config_object, clock, outbox):
    app = create_app(config_object)
    dispatcher = NotificationDispatcher([outbox["sms"], outbox["email"]], fallback=LogChannel())
    app.extensions["edudata.auth"] = build_auth_service(app.config, dispatcher=dispatcher, clock=clock)
    return app


@pytest.fixture
def app(clock, outbox):
    app = _make_app(TestingConfig, clock, outbox)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def no_otp_app(clock, outbox):
    class NoOtpConfig(TestingConfig):
        ENABLE_OTP = False

    app = _make_app(NoOtpConfig, clock, outbox)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["edudata.auth"]


@pytest.fixture
def make_user(app):
    def _make(email="asha@example.edu", password="secret123", *, phone=None,
              login_id=None, role="student", name="Asha Rao"):
        user = User(email=email, login_id=login_id, display_name=name, role=role, phone=phone)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make
