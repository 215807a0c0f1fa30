from __future__ import annotations
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import delete

from db import db
from models.otp_session import OtpSession


def purge_expired_otp_sessions(now: datetime | None = None) -> int:
    """
    Delete OTP sessions whose expiry has passed. Login never deletes rows
    itself; run this from cron (`flask purge-otp`).

    Rows still inside the rate-limit window are kept so the per-contact
    count stays intact.
    """
    now = now or datetime.now(timezone.utc)
    window = timedelta(minutes=int(current_app.config.get("OTP_RATE_LIMIT_WINDOW_MINUTES", 10)))
    result = db.session.execute(
        delete(OtpSession).where(
            OtpSession.expires_at < now,
            OtpSession.created_at < now - window,
        )
    )
    db.session.commit()
    current_app.logger.info("[purge-otp] removed %s expired sessions", result.rowcount)
    return result.rowcount or 0
