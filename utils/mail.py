# utils/mail.py
import logging
import smtplib
import socket
import ssl
from email.message import EmailMessage
from typing import Optional

__all__ = ["send_email", "mask_contact"]

log = logging.getLogger(__name__)

_PORT_PLAN = [("STARTTLS", 587), ("SSL", 465)]


def mask_contact(s: Optional[str]) -> str:
    """a***@g***.com for emails, +91******3210 for phones."""
    if not s:
        return ""
    if "@" in s:
        user, dom = s.split("@", 1)
        dot = dom.rfind(".")
        dom_mask = dom[:1] + "***" + (dom[dot:] if dot > 0 else "")
        return f"{user[:1]}***@{dom_mask}"
    if len(s) > 7:
        return s[:3] + "*" * (len(s) - 7) + s[-4:]
    return "***"


def send_email(
    *,
    to: str,
    subject: str,
    text: str = "",
    html: str = "",
    host: str,
    login: str,
    password: str,
    mail_from: str,
    timeout: int = 20,
) -> None:
    """
    Send one message over SMTP, trying STARTTLS on 587 and then SSL on 465.
    Raises RuntimeError when every attempt fails.
    """
    msg = EmailMessage()
    msg["From"] = mail_from
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text or "")
    if html:
        msg.add_alternative(html, subtype="html")

    last_err: Optional[Exception] = None

    for mode, port in _PORT_PLAN:
        try:
            ctx = ssl.create_default_context()
            if mode == "SSL":
                with smtplib.SMTP_SSL(host, port, context=ctx, timeout=timeout) as s:
                    s.login(login, password)
                    s.send_message(msg)
            else:
                with smtplib.SMTP(host, port, timeout=timeout) as s:
                    s.ehlo()
                    s.starttls(context=ctx)
                    s.ehlo()
                    s.login(login, password)
                    s.send_message(msg)

            log.info("[mail] sent via %s:%s as %s to %s", host, port, mask_contact(login), mask_contact(to))
            return
        except (smtplib.SMTPException, OSError, socket.error) as e:
            last_err = e
            log.warning("[mail] attempt %s %s:%s failed: %r", mode, host, port, e)

    raise RuntimeError(f"All SMTP attempts failed; last error: {last_err!r}")
