# services/notify.py
"""
OTP delivery.

``NotificationDispatcher`` walks an ordered list of channels (SMS, email,
server log) and hands the code to the first one that is configured, accepts
the contact and does not blow up. The general path never raises.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from twilio.rest import Client as TwilioClient

from utils.mail import mask_contact, send_email

__all__ = [
    "DeliveryReceipt",
    "SmsChannel",
    "EmailChannel",
    "LogChannel",
    "NotificationDispatcher",
    "is_phone",
    "is_email",
    "build_dispatcher",
]

log = logging.getLogger(__name__)

_PHONE_RE = re.compile(r"\+\d{8,15}")
_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

APP_NAME = "EduData"


def is_phone(contact: Optional[str]) -> bool:
    return bool(contact) and _PHONE_RE.fullmatch(contact.strip()) is not None


def is_email(contact: Optional[str]) -> bool:
    return bool(contact) and _EMAIL_RE.fullmatch(contact.strip()) is not None


def _otp_text(code: str, expiry_minutes: int) -> str:
    return f"Your {APP_NAME} OTP is: {code}. It expires in {expiry_minutes} minutes."


@dataclass(frozen=True)
class DeliveryReceipt:
    channel: str  # "sms" | "email" | "fallback-log"


class SmsChannel:
    name = "sms"

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str] = None,
        messaging_sid: Optional[str] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.messaging_sid = messaging_sid
        self._client: Optional[TwilioClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and (self.from_number or self.messaging_sid))

    def accepts(self, contact: str) -> bool:
        return is_phone(contact)

    def _twilio(self) -> TwilioClient:
        if self._client is None:
            self._client = TwilioClient(self.account_sid, self.auth_token)
        return self._client

    def send(self, contact: str, code: str, expiry_minutes: int) -> None:
        kwargs = {"to": contact.strip(), "body": _otp_text(code, expiry_minutes)}
        if self.messaging_sid:
            kwargs["messaging_service_sid"] = self.messaging_sid
        else:
            kwargs["from_"] = self.from_number
        msg = self._twilio().messages.create(**kwargs)
        log.info("[sms] queued sid=%s to=%s", getattr(msg, "sid", None), mask_contact(contact))


class EmailChannel:
    name = "email"

    def __init__(
        self,
        host: str,
        login: Optional[str],
        password: Optional[str],
        mail_from: Optional[str],
        timeout: int = 20,
    ):
        self.host = host
        self.login = login
        self.password = password
        self.mail_from = mail_from
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.host and self.login and self.password and self.mail_from)

    def accepts(self, contact: str) -> bool:
        return is_email(contact)

    def send(self, contact: str, code: str, expiry_minutes: int) -> None:
        html = f"""
          <div style="font-family:system-ui,Segoe UI,Roboto,Arial">
            <h2>Verify your sign-in</h2>
            <p>Your one-time code is:</p>
            <div style="font-size:24px;font-weight:700;letter-spacing:3px">{code}</div>
            <p>This code expires in {expiry_minutes} minutes.</p>
          </div>
        """
        send_email(
            to=contact.strip(),
            subject=f"Your {APP_NAME} OTP Code",
            text=_otp_text(code, expiry_minutes),
            html=html,
            host=self.host,
            login=self.login,
            password=self.password,
            mail_from=self.mail_from,
            timeout=self.timeout,
        )


class LogChannel:
    """Last resort: write the code to the server log (development)."""

    name = "fallback-log"
    configured = True

    def __init__(self, reveal_code: bool = True):
        self.reveal_code = reveal_code

    def accepts(self, contact: str) -> bool:
        return True

    def send(self, contact: str, code: str, expiry_minutes: int) -> None:
        if self.reveal_code:
            log.warning("[otp] contact=%s code=%s expires_in=%sm", contact, code, expiry_minutes)
        else:
            log.warning("[otp] no delivery channel reached contact=%s", mask_contact(contact))


class NotificationDispatcher:
    def __init__(self, channels: Sequence, fallback: Optional[LogChannel] = None):
        self.channels = list(channels)
        self.fallback = fallback or LogChannel()

    def _candidates(self) -> Iterable:
        yield from self.channels
        yield self.fallback

    def deliver(self, contact: str, code: str, expiry_minutes: int) -> DeliveryReceipt:
        for channel in self._candidates():
            if not channel.configured or not channel.accepts(contact):
                continue
            try:
                channel.send(contact, code, expiry_minutes)
            except Exception:
                log.exception("[otp] %s delivery failed for %s; trying next channel",
                              channel.name, mask_contact(contact))
                continue
            return DeliveryReceipt(channel=channel.name)

        # even the log channel raised; the session is still valid
        return DeliveryReceipt(channel=self.fallback.name)

    def deliver_via(self, channel_name: str, contact: str, code: str, expiry_minutes: int) -> bool:
        """Deliver over exactly one named channel; False instead of falling through."""
        channel = next((c for c in self._candidates() if c.name == channel_name), None)
        if channel is None or not channel.configured:
            log.warning("[otp] channel %s not configured", channel_name)
            return False
        if not channel.accepts(contact):
            log.warning("[otp] channel %s cannot reach %s", channel_name, mask_contact(contact))
            return False
        try:
            channel.send(contact, code, expiry_minutes)
        except Exception:
            log.exception("[otp] %s delivery failed for %s", channel_name, mask_contact(contact))
            return False
        return True


def build_dispatcher(config: Mapping) -> NotificationDispatcher:
    """Wire the standard SMS -> email -> log chain from app config."""
    sms = SmsChannel(
        config.get("TWILIO_ACCOUNT_SID"),
        config.get("TWILIO_AUTH_TOKEN"),
        from_number=config.get("TWILIO_FROM"),
        messaging_sid=config.get("TWILIO_MESSAGING_SID"),
    )
    email = EmailChannel(
        config.get("MAIL_HOST") or "smtp.gmail.com",
        config.get("MAIL_USERNAME"),
        config.get("MAIL_PASSWORD"),
        config.get("MAIL_FROM") or config.get("MAIL_USERNAME"),
        timeout=int(config.get("MAIL_TIMEOUT") or 20),
    )
    for ch in (sms, email):
        if not ch.configured:
            log.info("[otp] %s channel disabled (no credentials)", ch.name)
    return NotificationDispatcher(
        [sms, email],
        fallback=LogChannel(reveal_code=bool(config.get("OTP_LOG_FALLBACK_CODES", True))),
    )
