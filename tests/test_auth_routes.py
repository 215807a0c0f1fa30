from datetime import timedelta

import pytest

from db import db
from models.otp_session import OtpSession


def _signup(client, **overrides):
    body = {
        "email": "meera@example.edu",
        "password": "s3cret!",
        "name": "Meera Iyer",
        "role": "teacher",
        "phone": "+91 98765 43210",
        "loginId": "TCH-42",
    }
    body.update(overrides)
    return client.post("/api/auth/signup", json=body)


def _login(client, **body):
    body.setdefault("password", "s3cret!")
    if "loginId" not in body:
        body.setdefault("email", "meera@example.edu")
    return client.post("/api/auth/login", json=body)


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


# ── Signup ──────────────────────────────────────────────────────────────────
def test_signup_with_otp_asks_for_login(client):
    resp = _signup(client)

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["ok"] is True
    assert "token" not in data
    assert data["user"]["email"] == "meera@example.edu"
    assert data["user"]["phone"] == "+919876543210"
    assert data["user"]["role"] == "teacher"
    assert "password" not in str(data["user"]).lower()


def test_signup_duplicate(client):
    _signup(client)
    resp = _signup(client, loginId="TCH-43")

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "UserExists"


@pytest.mark.parametrize("overrides,code", [
    ({"password": ""}, "MissingInput"),
    ({"email": "", "loginId": ""}, "MissingInput"),
    ({"email": "not-an-email"}, "InvalidInput"),
    ({"phone": "98765"}, "InvalidInput"),
    ({"role": "principal"}, "InvalidInput"),
])
def test_signup_validation(client, overrides, code):
    resp = _signup(client, **overrides)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == code


def test_signup_without_otp_returns_token(no_otp_app):
    client = no_otp_app.test_client()
    resp = _signup(client)

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["token"]
    assert data["user"]["loginId"] == "TCH-42"


# ── Login / verify ──────────────────────────────────────────────────────────
def test_full_otp_flow(client, outbox):
    _signup(client)

    resp = _login(client)
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["otpRequired"] is True
    assert data["message"]
    assert "code" not in data
    session_token = data["sessionToken"]

    contact, code, expiry = outbox["sms"].sent[-1]
    assert contact == "+919876543210"
    assert expiry == 5

    resp = client.post("/api/auth/verify-otp", json={"sessionToken": session_token, "code": code})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["user"]["email"] == "meera@example.edu"
    token = data["token"]

    me = client.get("/api/auth/me", headers=_bearer(token))
    assert me.status_code == 200
    assert me.get_json()["loginId"] == "TCH-42"
    assert "passwordHash" not in me.get_json()

    again = client.post("/api/auth/verify-otp", json={"sessionToken": session_token, "code": code})
    assert again.status_code == 400
    assert again.get_json()["code"] == "AlreadyUsed"


def test_login_by_login_id(client, outbox):
    _signup(client)

    resp = _login(client, loginId="TCH-42")

    assert resp.status_code == 200
    assert resp.get_json()["otpRequired"] is True


def test_login_errors_do_not_say_which_field(client):
    _signup(client)

    unknown = _login(client, email="ghost@example.edu")
    wrong_pw = _login(client, password="nope")

    assert unknown.status_code == wrong_pw.status_code == 400
    assert unknown.get_json() == wrong_pw.get_json()


def test_login_missing_fields(client):
    resp = client.post("/api/auth/login", json={"email": "meera@example.edu"})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "MissingInput"


def test_login_rate_limited(client, clock):
    _signup(client)
    for _ in range(3):
        assert _login(client).status_code == 200
        clock.advance(seconds=30)

    resp = _login(client)

    assert resp.status_code == 429
    body = resp.get_json()
    assert body["code"] == "RateLimited"
    assert body["retryAfter"] == 10 * 60 - 90
    assert resp.headers["Retry-After"] == str(body["retryAfter"])


def test_verify_wrong_code_then_right(client, outbox):
    _signup(client)
    session_token = _login(client).get_json()["sessionToken"]
    code = outbox["sms"].last_code
    wrong = "999999" if code != "999999" else "000000"

    bad = client.post("/api/auth/verify-otp", json={"sessionToken": session_token, "code": wrong})
    assert bad.status_code == 400
    assert bad.get_json() == {"error": "Invalid OTP code", "code": "InvalidCode"}

    good = client.post("/api/auth/verify-otp", json={"sessionToken": session_token, "code": code})
    assert good.status_code == 200


def test_verify_expired(client, outbox, clock):
    _signup(client)
    session_token = _login(client).get_json()["sessionToken"]
    code = outbox["sms"].last_code

    clock.advance(minutes=5, seconds=1)
    resp = client.post("/api/auth/verify-otp", json={"sessionToken": session_token, "code": code})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "Expired"


@pytest.mark.parametrize("body,code", [
    ({}, "MissingInput"),
    ({"sessionToken": "nope", "code": "123456"}, "SessionNotFound"),
])
def test_verify_bad_requests(client, body, code):
    resp = client.post("/api/auth/verify-otp", json=body)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == code


# ── Resend ──────────────────────────────────────────────────────────────────
def test_resend_otp(client, outbox):
    _signup(client)
    old = _login(client).get_json()["sessionToken"]

    resp = client.post("/api/auth/resend-otp", json={"sessionToken": old})

    assert resp.status_code == 200
    new = resp.get_json()["sessionToken"]
    assert new != old
    assert len(outbox["sms"].sent) == 2
    ok = client.post("/api/auth/verify-otp", json={"sessionToken": new, "code": outbox["sms"].last_code})
    assert ok.status_code == 200


def test_resend_otp_rate_limited(client):
    _signup(client)
    token = _login(client).get_json()["sessionToken"]
    for _ in range(2):
        token = client.post("/api/auth/resend-otp", json={"sessionToken": token}).get_json()["sessionToken"]

    resp = client.post("/api/auth/resend-otp", json={"sessionToken": token})

    assert resp.status_code == 429


def test_resend_otp_email(client, outbox):
    _signup(client)
    token = _login(client).get_json()["sessionToken"]

    resp = client.post("/api/auth/resend-otp-email", json={"sessionToken": token})

    assert resp.status_code == 200
    assert resp.get_json()["message"] == "OTP sent to registered email"
    assert outbox["email"].last_contact == "meera@example.edu"


def test_resend_otp_email_no_email(client):
    _signup(client, email="")
    token = _login(client, loginId="TCH-42").get_json()["sessionToken"]

    resp = client.post("/api/auth/resend-otp-email", json={"sessionToken": token})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "NoEmailOnFile"


def test_resend_otp_email_delivery_failure(client, outbox):
    outbox["email"].fail = True
    _signup(client)
    token = _login(client).get_json()["sessionToken"]

    resp = client.post("/api/auth/resend-otp-email", json={"sessionToken": token})

    assert resp.status_code == 500
    assert resp.get_json()["code"] == "DeliveryFailed"


def test_resend_used_session(client, outbox):
    _signup(client)
    token = _login(client).get_json()["sessionToken"]
    client.post("/api/auth/verify-otp", json={"sessionToken": token, "code": outbox["sms"].last_code})

    for route in ("/api/auth/resend-otp", "/api/auth/resend-otp-email"):
        resp = client.post(route, json={"sessionToken": token})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "AlreadyUsed"


# ── OTP disabled ────────────────────────────────────────────────────────────
def test_login_without_otp(no_otp_app):
    client = no_otp_app.test_client()
    _signup(client)

    resp = _login(client)

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["user"]["email"] == "meera@example.edu"
    assert client.get("/api/auth/me", headers=_bearer(data["token"])).status_code == 200
    assert OtpSession.query.count() == 0


# ── Guard ───────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("headers,error", [
    ({}, "Missing token"),
    ({"Authorization": "Bearer not.a.jwt"}, "Invalid token"),
    ({"Authorization": "Token abc"}, "Missing token"),
])
def test_me_requires_valid_token(client, headers, error):
    resp = client.get("/api/auth/me", headers=headers)

    assert resp.status_code == 401
    assert resp.get_json()["error"] == error


def test_me_expired_token(client, service, make_user):
    user = make_user()
    service.tokens.ttl = timedelta(seconds=-10)
    token = service.tokens.issue(user)

    resp = client.get("/api/auth/me", headers=_bearer(token))

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Token has expired"


def test_me_user_gone(client, service, make_user):
    user = make_user()
    token = service.tokens.issue(user)
    db.session.delete(user)
    db.session.commit()

    resp = client.get("/api/auth/me", headers=_bearer(token))

    assert resp.status_code == 401


def test_admin_users_requires_admin(client, service, make_user):
    student = make_user(email="s@example.edu")
    admin = make_user(email="root@example.edu", role="admin")

    denied = client.get("/api/admin/users", headers=_bearer(service.tokens.issue(student)))
    assert denied.status_code == 403

    resp = client.get("/api/admin/users?role=student", headers=_bearer(service.tokens.issue(admin)))
    assert resp.status_code == 200
    assert [u["email"] for u in resp.get_json()["users"]] == ["s@example.edu"]

    bad = client.get("/api/admin/users?role=wizard", headers=_bearer(service.tokens.issue(admin)))
    assert bad.status_code == 400


# ── App-level errors ────────────────────────────────────────────────────────
def test_unexpected_error_is_generic_500(client, service, monkeypatch):
    def boom(token):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(service.otps, "find_by_token", boom)
    resp = client.post("/api/auth/verify-otp", json={"sessionToken": "x", "code": "123456"})

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "store unavailable"}


def test_unknown_route(client):
    resp = client.get("/api/nope")

    assert resp.status_code == 404
    assert resp.get_json()["path"] == "/api/nope"


def test_ping_is_not_cached(client):
    resp = client.get("/api/auth/ping")

    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True
    assert resp.headers["Cache-Control"] == "no-store"


@pytest.mark.parametrize("route", ["/api/auth/login", "/api/auth/verify-otp", "/api/auth/resend-otp"])
@pytest.mark.parametrize("payload", [["email", "password"], "hello", 42])
def test_non_object_body_is_missing_input(client, route, payload):
    resp = client.post(route, json=payload)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "MissingInput"
