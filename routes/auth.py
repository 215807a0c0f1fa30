# backend/routes/auth.py
from __future__ import annotations

import re
import time

from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy import or_

from db import db
from errors import InvalidInput, MissingInput, UserExists
from models.user import ROLES, User
from services.auth import OtpChallenge
from services.notify import is_email, is_phone
from auth_guard import auth_service, require_role

__all__ = ["auth_bp", "require_role"]
auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _str(data: dict, *keys: str) -> str:
    for k in keys:
        v = data.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def _auth_payload(result) -> dict:
    return {"user": result.user.to_public(), "token": result.token}


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------
@auth_bp.after_request
def add_no_store(resp):
    resp.headers["Cache-Control"] = "no-store"
    return resp


# -------------------------------------------------------------------
# Health
# -------------------------------------------------------------------
@auth_bp.route("/ping", methods=["GET"])
def ping():
    return jsonify(ok=True, ts=time.time()), 200


# -------------------------------------------------------------------
# Signup
# -------------------------------------------------------------------
@auth_bp.route("/signup", methods=["POST"])
def signup():
    data = _body()
    email = _str(data, "email").lower()
    login_id = _str(data, "loginId", "id")
    password = data.get("password") or ""
    name = _str(data, "name", "display_name", "displayName")
    role = (_str(data, "role") or "student").lower()
    phone = re.sub(r"[\s\-()]", "", _str(data, "phone"))

    if not password or not (email or login_id):
        raise MissingInput("password and one of email/loginId are required")
    if email and not is_email(email):
        raise InvalidInput("Invalid email address")
    if phone and not is_phone(phone):
        raise InvalidInput("phone must be in international format, e.g. +919876543210")
    if role not in ROLES:
        raise InvalidInput(f"role must be one of: {', '.join(ROLES)}")

    cond = []
    if email:
        cond.append(User.email == email)
    if login_id:
        cond.append(User.login_id == login_id)
    if User.query.filter(or_(*cond)).first():
        raise UserExists()

    user = User(
        email=email or None,
        login_id=login_id or None,
        display_name=name or None,
        role=role,
        phone=phone or None,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("[auth] signup uid=%s role=%s", user.id, user.role)

    svc = auth_service()
    if not svc.settings.enabled:
        return jsonify(_auth_payload(svc.issue_token(user))), 201

    # With OTP on, the client logs in to start a challenge
    return jsonify(
        ok=True,
        message="User created. Please login to receive OTP.",
        user=user.to_public(),
    ), 201


# -------------------------------------------------------------------
# Login (password check -> OTP session, or token when OTP is off)
# -------------------------------------------------------------------
@auth_bp.route("/login", methods=["POST"])
def login():
    data = _body()
    result = auth_service().login(
        email=_str(data, "email").lower() or None,
        login_id=_str(data, "loginId", "id") or None,
        password=data.get("password") or None,
    )

    if isinstance(result, OtpChallenge):
        return jsonify(
            otpRequired=True,
            sessionToken=result.session_token,
            message="OTP sent to registered contact.",
        ), 200

    return jsonify(_auth_payload(result)), 200


@auth_bp.route("/verify-otp", methods=["POST"])
def verify_otp():
    """Exchange {sessionToken, code} for {user, token}."""
    data = _body()
    result = auth_service().verify_otp(data.get("sessionToken"), data.get("code"))
    return jsonify(_auth_payload(result)), 200


@auth_bp.route("/resend-otp", methods=["POST"])
def resend_otp():
    data = _body()
    challenge = auth_service().resend_otp(data.get("sessionToken"))
    return jsonify(sessionToken=challenge.session_token, message="OTP resent"), 200


@auth_bp.route("/resend-otp-email", methods=["POST"])
def resend_otp_email():
    data = _body()
    challenge = auth_service().resend_otp_email(data.get("sessionToken"))
    return jsonify(sessionToken=challenge.session_token, message="OTP sent to registered email"), 200


# -------------------------------------------------------------------
# Me (token-based)
# -------------------------------------------------------------------
@auth_bp.route("/me", methods=["GET"])
@require_role()
def me():
    return jsonify(g.user.to_public()), 200
