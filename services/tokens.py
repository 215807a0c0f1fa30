# services/tokens.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

__all__ = ["TokenIssuer"]

ALGORITHM = "HS256"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Signs and checks the bearer access tokens handed out after login."""

    def __init__(self, secret: str, ttl_hours: int = 24 * 7,
                 clock: Optional[Callable[[], datetime]] = None):
        if not secret:
            raise RuntimeError("JWT signing secret is not configured")
        self.secret = secret
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock or _now_utc

    def issue(self, user) -> str:
        now = self.clock()
        payload = {
            "user_id": user.id,
            "email": user.email,
            "role": user.role,
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> dict:
        # raises jwt.ExpiredSignatureError / jwt.InvalidTokenError
        return jwt.decode(token, self.secret, algorithms=[ALGORITHM])
