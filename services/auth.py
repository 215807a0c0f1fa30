# services/auth.py
"""
Password + OTP login.

Flow: ``login`` checks the password, then (when OTP is enabled) creates an
``OtpSession`` and hands the code to the notification dispatcher. The client
trades the session token and the code for an access token in ``verify_otp``.
``resend_otp`` / ``resend_otp_email`` mint a fresh session for the same user.
"""
from __future__ import annotations

import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from errors import (
    AlreadyUsed,
    DeliveryFailed,
    Expired,
    InvalidCode,
    InvalidCredentials,
    MissingInput,
    NoContactOnFile,
    NoEmailOnFile,
    RateLimited,
    SessionNotFound,
    UserNotFound,
)
from models.otp_session import OtpSession, as_utc
from models.user import User
from services.notify import NotificationDispatcher, build_dispatcher
from services.stores import CredentialStore, OtpSessionStore
from services.tokens import TokenIssuer
from utils.mail import mask_contact

__all__ = ["OtpSettings", "OtpChallenge", "AuthResult", "AuthService", "build_auth_service"]

log = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OtpSettings:
    enabled: bool = True
    length: int = 6
    expiry_minutes: int = 5
    rate_limit_count: int = 3
    rate_limit_window_minutes: int = 10
    hash_method: str = "scrypt"

    @classmethod
    def from_config(cls, config: Mapping) -> "OtpSettings":
        return cls(
            enabled=bool(config.get("ENABLE_OTP", True)),
            length=int(config.get("OTP_LENGTH", 6)),
            expiry_minutes=int(config.get("OTP_EXPIRY_MINUTES", 5)),
            rate_limit_count=int(config.get("OTP_RATE_LIMIT_COUNT", 3)),
            rate_limit_window_minutes=int(config.get("OTP_RATE_LIMIT_WINDOW_MINUTES", 10)),
            hash_method=config.get("OTP_HASH_METHOD") or "scrypt",
        )


@dataclass(frozen=True)
class OtpChallenge:
    session_token: str
    channel: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    user: User
    token: str


class AuthService:
    def __init__(
        self,
        users: CredentialStore,
        otps: OtpSessionStore,
        dispatcher: NotificationDispatcher,
        tokens: TokenIssuer,
        settings: OtpSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.users = users
        self.otps = otps
        self.dispatcher = dispatcher
        self.tokens = tokens
        self.settings = settings
        self.clock = clock or _now_utc

    # ── Codes ───────────────────────────────────────────────────────────────
    def generate_code(self) -> str:
        n = self.settings.length
        return f"{secrets.randbelow(10 ** n):0{n}d}"

    def hash_code(self, code: str) -> str:
        return generate_password_hash(code, method=self.settings.hash_method)

    def check_code(self, code_hash: str, code) -> bool:
        return check_password_hash(code_hash, self._normalize_code(code))

    def _normalize_code(self, code) -> str:
        if isinstance(code, int) and not isinstance(code, bool):
            # JSON numbers lose leading zeros
            return f"{code:0{self.settings.length}d}"
        return str(code).strip()

    # ── Password stage ──────────────────────────────────────────────────────
    def authenticate(self, *, email: Optional[str] = None, login_id: Optional[str] = None,
                     password: Optional[str] = None) -> User:
        if not password:
            raise MissingInput("Missing password")
        if not (email or login_id):
            raise MissingInput("Provide email or loginId")

        user = self.users.find_by_identifier(email=email, login_id=login_id)
        if user is None or not self.users.verify_password(user, password):
            raise InvalidCredentials()
        return user

    def login(self, *, email: Optional[str] = None, login_id: Optional[str] = None,
              password: Optional[str] = None) -> AuthResult | OtpChallenge:
        user = self.authenticate(email=email, login_id=login_id, password=password)
        if not self.settings.enabled:
            log.info("[auth] OTP disabled; token issued for uid=%s", user.id)
            return self.issue_token(user)
        return self.issue_otp(user)

    # ── OTP issuance ────────────────────────────────────────────────────────
    def _check_rate_limit(self, contact: str, now: datetime) -> None:
        limit = self.settings.rate_limit_count
        window = timedelta(minutes=self.settings.rate_limit_window_minutes)
        since = now - window

        if self.otps.count_since(contact, since) < limit:
            return

        # seconds until enough of the window's rows age out to free one slot
        recent = self.otps.created_since(contact, since)
        idx = len(recent) - limit
        if recent and 0 <= idx < len(recent):
            wait = (recent[idx] + window - now).total_seconds()
        else:
            wait = window.total_seconds()
        log.warning("[otp] rate limited contact=%s recent=%d", mask_contact(contact), len(recent))
        raise RateLimited(math.ceil(max(wait, 0)), self.settings.rate_limit_window_minutes)

    def _create_session(self, user_id: int, contact: str) -> tuple[OtpSession, str]:
        now = self.clock()
        self._check_rate_limit(contact, now)

        code = self.generate_code()
        rec = OtpSession(
            token=secrets.token_hex(16),
            user_id=user_id,
            contact=contact,
            code_hash=self.hash_code(code),
            expires_at=now + timedelta(minutes=self.settings.expiry_minutes),
            used=False,
            created_at=now,
        )
        self.otps.add(rec)
        return rec, code

    def issue_otp(self, user: User) -> OtpChallenge:
        contact = user.preferred_contact
        if not contact:
            raise NoContactOnFile()
        return self._issue_for(user.id, contact)

    def _issue_for(self, user_id: int, contact: str) -> OtpChallenge:
        rec, code = self._create_session(user_id, contact)
        receipt = self.dispatcher.deliver(contact, code, self.settings.expiry_minutes)
        log.info("[otp] session created uid=%s contact=%s via=%s",
                 user_id, mask_contact(contact), receipt.channel)
        return OtpChallenge(session_token=rec.token, channel=receipt.channel,
                            expires_at=as_utc(rec.expires_at))

    # ── OTP verification ────────────────────────────────────────────────────
    def _pending_session(self, session_token: Optional[str]) -> OtpSession:
        if not session_token:
            raise MissingInput("sessionToken required")
        rec = self.otps.find_by_token(session_token)
        if rec is None:
            raise SessionNotFound()
        if rec.used:
            raise AlreadyUsed()
        return rec

    def verify_otp(self, session_token: Optional[str], code) -> AuthResult:
        if code is None or (isinstance(code, str) and not code.strip()):
            raise MissingInput("sessionToken and code required")
        rec = self._pending_session(session_token)

        if rec.is_expired(self.clock()):
            raise Expired()

        if not self.check_code(rec.code_hash, code):
            log.info("[otp] wrong code for session id=%s", rec.id)
            raise InvalidCode()

        if not self.otps.mark_used(rec):
            raise AlreadyUsed()

        user = self.users.get(rec.user_id)
        if user is None:
            raise UserNotFound()

        log.info("[otp] verified uid=%s", user.id)
        return self.issue_token(user)

    # ── Resend ──────────────────────────────────────────────────────────────
    def resend_otp(self, session_token: Optional[str]) -> OtpChallenge:
        old = self._pending_session(session_token)
        return self._issue_for(old.user_id, old.contact)

    def resend_otp_email(self, session_token: Optional[str]) -> OtpChallenge:
        old = self._pending_session(session_token)
        user = self.users.get(old.user_id)
        if user is None or not user.email:
            raise NoEmailOnFile()

        contact = user.email
        rec, code = self._create_session(user.id, contact)
        if not self.dispatcher.deliver_via("email", contact, code, self.settings.expiry_minutes):
            # the new session stays valid; only the delivery is reported
            raise DeliveryFailed()
        log.info("[otp] email resend uid=%s contact=%s", user.id, mask_contact(contact))
        return OtpChallenge(session_token=rec.token, channel="email", expires_at=as_utc(rec.expires_at))

    # ── Tokens ──────────────────────────────────────────────────────────────
    def issue_token(self, user: User) -> AuthResult:
        return AuthResult(user=user, token=self.tokens.issue(user))


def build_auth_service(
    config: Mapping,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> AuthService:
    return AuthService(
        users=CredentialStore(),
        otps=OtpSessionStore(),
        dispatcher=dispatcher or build_dispatcher(config),
        tokens=TokenIssuer(config.get("JWT_SECRET_KEY") or config.get("SECRET_KEY"),
                           ttl_hours=int(config.get("JWT_TTL_HOURS", 24 * 7))),
        settings=OtpSettings.from_config(config),
        clock=clock,
    )
