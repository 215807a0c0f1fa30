# auth_guard.py
from __future__ import annotations

from functools import wraps

import jwt
from flask import request, jsonify, g, current_app

from db import db
from models.user import User

__all__ = ["require_role", "auth_service"]


def auth_service():
    """The AuthService the app factory wired up."""
    return current_app.extensions["edudata.auth"]


def require_role(*roles):
    """
    Usage:
      @require_role()                       -> any authenticated user
      @require_role("teacher")              -> only teachers (or admin)
      @require_role("teacher", "institution")
    """
    # Support passing a single list/tuple as well
    if len(roles) == 1 and isinstance(roles[0], (list, tuple, set)):
        roles = tuple(roles[0])
    allowed = {str(r).lower() for r in roles if r}

    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                return jsonify(error="Missing token"), 401

            token = auth.split(" ", 1)[1].strip()
            try:
                payload = auth_service().tokens.decode(token)
            except jwt.ExpiredSignatureError:
                return jsonify(error="Token has expired"), 401
            except jwt.InvalidTokenError:
                return jsonify(error="Invalid token"), 401

            user = db.session.get(User, payload.get("user_id"))
            if not user:
                return jsonify(error="User not found"), 401

            role = (user.role or "").lower()
            g.user = user  # type: ignore[attr-defined]
            g.role = role  # type: ignore[attr-defined]

            current_app.logger.info(
                "[guard] %s %s uid=%s role=%s ip=%s",
                request.method, request.path, user.id, role, request.remote_addr,
            )

            # Role check (admin bypass)
            if allowed and role not in allowed and role != "admin":
                return jsonify(error="Insufficient permissions"), 403

            return f(*args, **kwargs)

        return wrapped

    return decorator
